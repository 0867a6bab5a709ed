from django.urls import path

from . import views

urlpatterns = [
    # =============== STAFF ===============
    path('', views.EmployeeListCreateView.as_view(), name='employee-list-create'),
    path('<uuid:pk>/', views.EmployeeDetailView.as_view(), name='employee-detail'),
    path('on-shift/', views.staff_on_shift, name='staff-on-shift'),

    # =============== TIME TRACKING ===============
    path('clock-in/', views.clock_in, name='clock-in'),
    path('clock-out/', views.clock_out, name='clock-out'),
    path('break/start/', views.start_break, name='break-start'),
    path('break/end/', views.end_break, name='break-end'),
    path('shift-status/', views.shift_status, name='shift-status'),

    # =============== TIME SHEETS & PAYROLL ===============
    path('timesheets/', views.TimeSheetListView.as_view(), name='timesheet-list'),
    path('timesheets/<int:pk>/approve/', views.approve_timesheet, name='timesheet-approve'),
    path('payroll/', views.payroll_summary, name='payroll-summary'),
]
