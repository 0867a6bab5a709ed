from django.db import models
from django.utils import timezone
from decimal import Decimal
import uuid

from authentication.models import TimeStampedModel, CustomUser, Cafe, Counter
from authentication.roles import ROLE_CHOICES, DEFAULT_PERMISSIONS, OWNER


class Employee(TimeStampedModel):
    """A user's staff membership in a cafe, carrying role and permissions"""
    STATUS_CHOICES = [
        ('ACTIVE', 'Active'),
        ('INACTIVE', 'Inactive'),
        ('ON_LEAVE', 'On Leave'),
        ('TERMINATED', 'Terminated'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    cafe = models.ForeignKey(Cafe, on_delete=models.CASCADE, related_name='employees')
    user = models.ForeignKey(CustomUser, on_delete=models.CASCADE, related_name='employments')
    employee_code = models.CharField(max_length=20)
    role = models.CharField(max_length=20, choices=ROLE_CHOICES)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='ACTIVE')
    permissions = models.JSONField(default=list, blank=True)

    hourly_rate = models.DecimalField(max_digits=8, decimal_places=2, default=Decimal('0.00'))
    hire_date = models.DateField(default=timezone.localdate)
    department = models.CharField(max_length=100, blank=True)
    assigned_counter = models.ForeignKey(
        Counter, on_delete=models.SET_NULL, null=True, blank=True, related_name='employees'
    )
    assigned_by = models.ForeignKey(
        CustomUser, on_delete=models.SET_NULL, null=True, blank=True, related_name='assigned_employees'
    )

    class Meta:
        db_table = 'employees'
        unique_together = [['cafe', 'user'], ['cafe', 'employee_code']]
        ordering = ['employee_code']

    def __str__(self):
        return f"{self.user.full_name} ({self.role}) @ {self.cafe.name}"

    def save(self, *args, **kwargs):
        if not self.permissions:
            self.permissions = list(DEFAULT_PERMISSIONS.get(self.role, []))
        if not self.employee_code:
            count = Employee.objects.filter(cafe=self.cafe).count()
            self.employee_code = f"EMP{count + 1:04d}"
        super().save(*args, **kwargs)

    @property
    def is_active(self):
        return self.status == 'ACTIVE'

    def has_permission(self, code):
        if self.role == OWNER:
            return True
        return 'all' in self.permissions or code in self.permissions

    @property
    def open_timesheet(self):
        return self.timesheets.filter(clock_out__isnull=True).order_by('-clock_in').first()


class TimeSheet(TimeStampedModel):
    employee = models.ForeignKey(Employee, on_delete=models.CASCADE, related_name='timesheets')
    work_date = models.DateField()
    clock_in = models.DateTimeField()
    clock_out = models.DateTimeField(null=True, blank=True)

    break_minutes = models.PositiveIntegerField(default=0)
    break_started_at = models.DateTimeField(null=True, blank=True)

    total_hours = models.DecimalField(max_digits=6, decimal_places=2, default=Decimal('0.00'))
    regular_hours = models.DecimalField(max_digits=6, decimal_places=2, default=Decimal('0.00'))
    overtime_hours = models.DecimalField(max_digits=6, decimal_places=2, default=Decimal('0.00'))
    notes = models.TextField(blank=True)

    is_approved = models.BooleanField(default=False)
    approved_by = models.ForeignKey(
        CustomUser, on_delete=models.SET_NULL, null=True, blank=True, related_name='approved_timesheets'
    )
    approved_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'timesheets'
        ordering = ['-clock_in']

    def __str__(self):
        return f"{self.employee.employee_code} {self.work_date}"

    @property
    def is_open(self):
        return self.clock_out is None

    @property
    def on_break(self):
        return self.break_started_at is not None

    def gross_pay(self, overtime_multiplier):
        rate = self.employee.hourly_rate
        return (self.regular_hours * rate) + (self.overtime_hours * rate * overtime_multiplier)
