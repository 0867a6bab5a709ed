from django.db import transaction
from django.utils import timezone
from decimal import Decimal, ROUND_HALF_UP
import logging

from authentication.exceptions import TimeTrackingError
from .models import Employee, TimeSheet

logger = logging.getLogger(__name__)

HOUR = Decimal('0.01')


def _hours(seconds):
    return (Decimal(str(max(seconds, 0))) / Decimal('3600')).quantize(HOUR, rounding=ROUND_HALF_UP)


def _locked_open_sheet(employee):
    return TimeSheet.objects.select_for_update().filter(
        employee=employee, clock_out__isnull=True
    ).order_by('-clock_in').first()


def clock_in(employee, notes='', at=None):
    at = at or timezone.now()
    if not employee.is_active:
        raise TimeTrackingError(f"{employee.employee_code} is {employee.status.lower()} and cannot clock in.")

    with transaction.atomic():
        Employee.objects.select_for_update().filter(pk=employee.pk).first()
        if _locked_open_sheet(employee) is not None:
            raise TimeTrackingError("Already clocked in. Clock out first.")
        sheet = TimeSheet.objects.create(
            employee=employee,
            work_date=timezone.localdate(at),
            clock_in=at,
            notes=notes or '',
        )

    logger.info(f"{employee.employee_code} clocked in at {employee.cafe.slug}")
    return sheet


def start_break(employee, at=None):
    at = at or timezone.now()
    with transaction.atomic():
        sheet = _locked_open_sheet(employee)
        if sheet is None:
            raise TimeTrackingError("Not clocked in.")
        if sheet.on_break:
            raise TimeTrackingError("Break already started.")
        sheet.break_started_at = at
        sheet.save(update_fields=['break_started_at', 'updated_at'])
    return sheet


def _close_break(sheet, at):
    minutes = int((at - sheet.break_started_at).total_seconds() // 60)
    sheet.break_minutes += max(minutes, 0)
    sheet.break_started_at = None


def end_break(employee, at=None):
    at = at or timezone.now()
    with transaction.atomic():
        sheet = _locked_open_sheet(employee)
        if sheet is None:
            raise TimeTrackingError("Not clocked in.")
        if not sheet.on_break:
            raise TimeTrackingError("No break in progress.")
        _close_break(sheet, at)
        sheet.save(update_fields=['break_minutes', 'break_started_at', 'updated_at'])
    return sheet


def clock_out(employee, notes='', at=None):
    """
    Close the open sheet and split the worked time into regular and
    overtime hours. A break still running is ended at clock-out.
    """
    at = at or timezone.now()
    regular_limit = Decimal(str(employee.cafe.get_setting('regular_hours_per_shift')))

    with transaction.atomic():
        sheet = _locked_open_sheet(employee)
        if sheet is None:
            raise TimeTrackingError("Not clocked in.")
        if sheet.on_break:
            _close_break(sheet, at)

        worked = _hours((at - sheet.clock_in).total_seconds() - sheet.break_minutes * 60)
        sheet.clock_out = at
        sheet.total_hours = worked
        sheet.regular_hours = min(worked, regular_limit)
        sheet.overtime_hours = worked - sheet.regular_hours
        if notes:
            sheet.notes = f"{sheet.notes}\n{notes}".strip()
        sheet.save()

    logger.info(f"{employee.employee_code} clocked out: {sheet.total_hours}h ({sheet.overtime_hours}h overtime)")
    return sheet


def approve_timesheet(sheet, user):
    if sheet.is_open:
        raise TimeTrackingError("Cannot approve a shift that is still open.")
    if sheet.is_approved:
        raise TimeTrackingError("Time sheet is already approved.")
    sheet.is_approved = True
    sheet.approved_by = user
    sheet.approved_at = timezone.now()
    sheet.save(update_fields=['is_approved', 'approved_by', 'approved_at', 'updated_at'])
    logger.info(f"Time sheet {sheet.pk} for {sheet.employee.employee_code} approved by {user.email}")
    return sheet


def shift_status(employee, at=None):
    at = at or timezone.now()
    sheet = employee.open_timesheet
    if sheet is None:
        return {'clocked_in': False, 'on_break': False, 'timesheet_id': None}

    break_minutes = sheet.break_minutes
    if sheet.on_break:
        break_minutes += int((at - sheet.break_started_at).total_seconds() // 60)
    return {
        'clocked_in': True,
        'on_break': sheet.on_break,
        'timesheet_id': sheet.pk,
        'clock_in': sheet.clock_in,
        'break_started_at': sheet.break_started_at,
        'break_minutes': break_minutes,
        'hours_so_far': _hours((at - sheet.clock_in).total_seconds() - break_minutes * 60),
    }


def staff_on_shift(cafe):
    return Employee.objects.filter(
        cafe=cafe, status='ACTIVE', timesheets__clock_out__isnull=True
    ).select_related('user').distinct()


def deactivate_employee(employee, user=None):
    """Switch a membership off; an open shift is closed first"""
    if employee.open_timesheet is not None:
        clock_out(employee, notes='Closed on deactivation')
    employee.status = 'INACTIVE'
    employee.assigned_counter = None
    employee.save(update_fields=['status', 'assigned_counter', 'updated_at'])
    logger.info(f"Employee {employee.employee_code} deactivated by {user.email if user else 'system'}")
    return employee


def payroll_summary(cafe, start_date, end_date, include_unapproved=False):
    """
    Gross pay per employee for closed sheets worked between the dates.

    Only approved sheets count unless ``include_unapproved`` is set.
    """
    multiplier = Decimal(str(cafe.get_setting('overtime_multiplier')))
    sheets = TimeSheet.objects.filter(
        employee__cafe=cafe, work_date__gte=start_date, work_date__lte=end_date, clock_out__isnull=False
    ).select_related('employee', 'employee__user')
    if not include_unapproved:
        sheets = sheets.filter(is_approved=True)

    rows = {}
    for sheet in sheets.order_by('employee__employee_code', 'work_date'):
        employee = sheet.employee
        row = rows.setdefault(employee.pk, {
            'employee_id': str(employee.pk),
            'employee_code': employee.employee_code,
            'name': employee.user.full_name,
            'role': employee.role,
            'hourly_rate': employee.hourly_rate,
            'shifts': 0,
            'regular_hours': Decimal('0.00'),
            'overtime_hours': Decimal('0.00'),
            'regular_pay': Decimal('0.00'),
            'overtime_pay': Decimal('0.00'),
        })
        row['shifts'] += 1
        row['regular_hours'] += sheet.regular_hours
        row['overtime_hours'] += sheet.overtime_hours

    employees = []
    for row in rows.values():
        rate = row['hourly_rate']
        row['total_hours'] = row['regular_hours'] + row['overtime_hours']
        row['regular_pay'] = (row['regular_hours'] * rate).quantize(HOUR, rounding=ROUND_HALF_UP)
        row['overtime_pay'] = (row['overtime_hours'] * rate * multiplier).quantize(HOUR, rounding=ROUND_HALF_UP)
        row['gross_pay'] = row['regular_pay'] + row['overtime_pay']
        employees.append(row)

    return {
        'start_date': start_date,
        'end_date': end_date,
        'approved_only': not include_unapproved,
        'employees': employees,
        'total_hours': sum((row['total_hours'] for row in employees), Decimal('0.00')),
        'total_gross_pay': sum((row['gross_pay'] for row in employees), Decimal('0.00')),
    }
