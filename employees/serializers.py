from rest_framework import serializers
from django.contrib.auth.password_validation import validate_password
from django.db import transaction
from decimal import Decimal

from authentication.models import CustomUser, Counter
from authentication.roles import ROLE_CHOICES, OWNER, DEFAULT_PERMISSIONS
from .models import Employee, TimeSheet


class EmployeeSerializer(serializers.ModelSerializer):
    email = serializers.EmailField(source='user.email', read_only=True)
    full_name = serializers.CharField(source='user.full_name', read_only=True)
    phone = serializers.CharField(source='user.phone', read_only=True)
    counter_number = serializers.IntegerField(source='assigned_counter.number', read_only=True, default=None)
    is_clocked_in = serializers.SerializerMethodField()

    class Meta:
        model = Employee
        fields = [
            'id', 'employee_code', 'user', 'email', 'full_name', 'phone', 'role', 'status', 'permissions',
            'hourly_rate', 'hire_date', 'department', 'assigned_counter', 'counter_number',
            'is_clocked_in', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'employee_code', 'user', 'created_at', 'updated_at']

    def get_is_clocked_in(self, obj):
        return obj.open_timesheet is not None

    def validate_assigned_counter(self, value):
        cafe = self.context.get('cafe')
        if value is not None and cafe is not None and value.cafe_id != cafe.id:
            raise serializers.ValidationError('Counter belongs to a different cafe')
        return value

    def validate_role(self, value):
        if value == OWNER and (self.instance is None or self.instance.role != OWNER):
            raise serializers.ValidationError('A cafe has exactly one owner')
        return value

    def update(self, instance, validated_data):
        # Role change without explicit permissions resets them to the role defaults
        if 'role' in validated_data and validated_data['role'] != instance.role and 'permissions' not in validated_data:
            validated_data['permissions'] = list(DEFAULT_PERMISSIONS.get(validated_data['role'], []))
        return super().update(instance, validated_data)


class EmployeeCreateSerializer(serializers.Serializer):
    """Add staff: links an existing account by email or creates one"""
    email = serializers.EmailField()
    first_name = serializers.CharField(max_length=150, required=False, allow_blank=True, default='')
    last_name = serializers.CharField(max_length=150, required=False, allow_blank=True, default='')
    phone = serializers.CharField(max_length=17, required=False, allow_blank=True, default='')
    password = serializers.CharField(write_only=True, required=False, validators=[validate_password])
    pin = serializers.CharField(max_length=6, required=False, allow_blank=True, default='')
    role = serializers.ChoiceField(choices=[choice for choice in ROLE_CHOICES if choice[0] != OWNER])
    permissions = serializers.ListField(child=serializers.CharField(), required=False)
    hourly_rate = serializers.DecimalField(max_digits=8, decimal_places=2, min_value=0, required=False)
    hire_date = serializers.DateField(required=False)
    department = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    assigned_counter = serializers.PrimaryKeyRelatedField(
        queryset=Counter.objects.all(), required=False, allow_null=True
    )

    def validate_pin(self, value):
        if value and (not value.isdigit() or len(value) != 6):
            raise serializers.ValidationError('PIN must be exactly 6 digits')
        return value

    def validate_assigned_counter(self, value):
        cafe = self.context.get('cafe')
        if value is not None and value.cafe_id != cafe.id:
            raise serializers.ValidationError('Counter belongs to a different cafe')
        return value

    def validate(self, attrs):
        cafe = self.context['cafe']
        user = CustomUser.objects.filter(email__iexact=attrs['email']).first()
        if user is not None and Employee.objects.filter(cafe=cafe, user=user).exists():
            raise serializers.ValidationError({'email': 'This user already works at this cafe'})
        if user is None and not attrs.get('password'):
            raise serializers.ValidationError({'password': 'Required when creating a new account'})
        if user is None and not attrs.get('first_name'):
            raise serializers.ValidationError({'first_name': 'Required when creating a new account'})
        attrs['user'] = user
        return attrs

    @transaction.atomic
    def create(self, validated_data):
        cafe = self.context['cafe']
        user = validated_data.pop('user')
        if user is None:
            user = CustomUser(
                email=validated_data['email'],
                first_name=validated_data['first_name'],
                last_name=validated_data['last_name'],
                phone=validated_data['phone'],
                pin=validated_data['pin'],
            )
            user.set_password(validated_data['password'])
            user.save()

        fields = {
            key: validated_data[key]
            for key in ['permissions', 'hourly_rate', 'hire_date', 'assigned_counter']
            if validated_data.get(key) is not None
        }
        return Employee.objects.create(
            cafe=cafe,
            user=user,
            role=validated_data['role'],
            department=validated_data['department'],
            assigned_by=self.context['request'].user,
            **fields
        )


class TimeSheetSerializer(serializers.ModelSerializer):
    employee_code = serializers.CharField(source='employee.employee_code', read_only=True)
    employee_name = serializers.CharField(source='employee.user.full_name', read_only=True)
    gross_pay = serializers.SerializerMethodField()

    class Meta:
        model = TimeSheet
        fields = [
            'id', 'employee', 'employee_code', 'employee_name', 'work_date', 'clock_in', 'clock_out',
            'break_minutes', 'break_started_at', 'total_hours', 'regular_hours', 'overtime_hours',
            'gross_pay', 'notes', 'is_approved', 'approved_by', 'approved_at'
        ]
        read_only_fields = fields

    def get_gross_pay(self, obj):
        if obj.is_open:
            return None
        multiplier = obj.employee.cafe.get_setting('overtime_multiplier')
        return str(obj.gross_pay(multiplier).quantize(Decimal('0.01')))


class ClockSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class PayrollQuerySerializer(serializers.Serializer):
    start_date = serializers.DateField()
    end_date = serializers.DateField()
    include_unapproved = serializers.BooleanField(default=False)

    def validate(self, attrs):
        if attrs['end_date'] < attrs['start_date']:
            raise serializers.ValidationError({'end_date': 'Must be on or after start_date'})
        return attrs
