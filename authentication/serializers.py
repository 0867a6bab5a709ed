from rest_framework import serializers
from django.contrib.auth import authenticate
from django.contrib.auth.password_validation import validate_password
from django.db import transaction
from django.utils.text import slugify
from decimal import Decimal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from employees.models import Employee
from .models import CustomUser, Cafe, Counter
from .roles import OWNER


def check_timezone(value):
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError):
        raise serializers.ValidationError(f'Unknown time zone: {value}')
    return value


class UserSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True, validators=[validate_password], required=False)
    confirm_password = serializers.CharField(write_only=True, required=False)
    full_name = serializers.SerializerMethodField(read_only=True)

    class Meta:
        model = CustomUser
        fields = [
            'id', 'email', 'first_name', 'last_name', 'full_name', 'phone', 'date_of_birth',
            'pin', 'password', 'confirm_password', 'is_active', 'last_login_at'
        ]
        extra_kwargs = {
            'pin': {'write_only': True, 'required': False},
            'password': {'write_only': True},
            'last_login_at': {'read_only': True},
            'is_active': {'read_only': True},
        }

    def get_full_name(self, obj):
        return obj.full_name

    def validate(self, attrs):
        if 'password' in attrs and 'confirm_password' in attrs:
            if attrs['password'] != attrs['confirm_password']:
                raise serializers.ValidationError("Passwords don't match")
        if not self.instance and not attrs.get('password'):
            raise serializers.ValidationError({'password': 'This field is required.'})
        return attrs

    def validate_pin(self, value):
        if value and (not str(value).isdigit() or len(str(value)) != 6):
            raise serializers.ValidationError("PIN must be exactly 6 digits")
        return str(value)

    def create(self, validated_data):
        validated_data.pop('confirm_password', None)
        password = validated_data.pop('password')
        user = CustomUser(**validated_data)
        user.set_password(password)
        user.save()
        return user

    def update(self, instance, validated_data):
        validated_data.pop('confirm_password', None)
        password = validated_data.pop('password', None)

        for attr, value in validated_data.items():
            setattr(instance, attr, value)

        if password:
            instance.set_password(password)

        instance.save()
        return instance


class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField()
    pin = serializers.CharField(max_length=6, required=False, allow_blank=True)

    def validate(self, attrs):
        email = attrs.get('email')
        password = attrs.get('password')
        pin = attrs.get('pin')

        user = authenticate(username=email, password=password)
        if not user:
            raise serializers.ValidationError('Invalid email or password')

        # Staff accounts with a PIN must supply it
        if user.pin and user.pin != pin:
            raise serializers.ValidationError('Invalid PIN')

        if not user.is_active:
            raise serializers.ValidationError('User account is disabled')

        attrs['user'] = user
        attrs['memberships'] = list(
            Employee.objects.select_related('cafe').filter(user=user, status='ACTIVE')
        )
        return attrs


class CounterSerializer(serializers.ModelSerializer):
    active_order_count = serializers.ReadOnlyField()
    is_available = serializers.ReadOnlyField()

    class Meta:
        model = Counter
        fields = [
            'id', 'cafe', 'number', 'name', 'status', 'max_concurrent_orders',
            'active_order_count', 'is_available', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'cafe', 'created_at', 'updated_at']

    def validate_number(self, value):
        cafe = self.context.get('cafe')
        queryset = Counter.objects.filter(cafe=cafe, number=value)
        if self.instance:
            queryset = queryset.exclude(pk=self.instance.pk)
        if cafe and queryset.exists():
            raise serializers.ValidationError('Counter number already exists in this cafe')
        return value


class CafeSerializer(serializers.ModelSerializer):
    is_active = serializers.ReadOnlyField()
    is_open_now = serializers.SerializerMethodField()
    total_employees = serializers.SerializerMethodField()
    total_counters = serializers.SerializerMethodField()

    class Meta:
        model = Cafe
        fields = [
            'id', 'name', 'slug', 'hostname', 'description', 'location', 'address',
            'phone', 'email', 'status', 'open_time', 'close_time', 'timezone',
            'is_active', 'is_open_now', 'total_employees', 'total_counters',
            'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']
        extra_kwargs = {'slug': {'required': False}}

    def validate_timezone(self, value):
        return check_timezone(value)

    def get_is_open_now(self, obj):
        return obj.is_open()

    def get_total_employees(self, obj):
        return obj.employees.filter(status='ACTIVE').count()

    def get_total_counters(self, obj):
        return obj.counters.filter(status='ACTIVE').count()

    def validate(self, attrs):
        if not self.instance and not attrs.get('slug'):
            attrs['slug'] = slugify(attrs.get('name', ''))
            if Cafe.objects.filter(slug=attrs['slug']).exists():
                raise serializers.ValidationError({'slug': 'A cafe with this slug already exists'})
        return attrs

    @transaction.atomic
    def create(self, validated_data):
        owner = self.context['request'].user
        cafe = Cafe.objects.create(owner=owner, **validated_data)
        Employee.objects.create(cafe=cafe, user=owner, role=OWNER, permissions=['all'], assigned_by=owner)
        Counter.objects.create(cafe=cafe, number=1, name='Main Counter')
        return cafe


class CafeRegistrationSerializer(serializers.Serializer):
    # Cafe Info
    cafe_name = serializers.CharField(max_length=255)
    slug = serializers.SlugField(max_length=80, required=False)
    location = serializers.CharField(max_length=255, required=False, allow_blank=True)
    address = serializers.JSONField(default=dict)
    phone = serializers.CharField(max_length=20, required=False, allow_blank=True)
    timezone = serializers.CharField(max_length=50, default='UTC')

    # Owner Info
    owner_first_name = serializers.CharField(max_length=150)
    owner_last_name = serializers.CharField(max_length=150, required=False, allow_blank=True)
    owner_email = serializers.EmailField()
    owner_password = serializers.CharField(validators=[validate_password])
    owner_pin = serializers.CharField(max_length=6, required=False, allow_blank=True)

    def validate_timezone(self, value):
        return check_timezone(value)

    def validate_cafe_name(self, value):
        if Cafe.objects.filter(name__iexact=value).exists():
            raise serializers.ValidationError('A cafe with this name already exists')
        return value

    def validate_owner_email(self, value):
        if CustomUser.objects.filter(email=value).exists():
            raise serializers.ValidationError('User with this email already exists')
        return value

    def validate_owner_pin(self, value):
        if value and (not str(value).isdigit() or len(str(value)) != 6):
            raise serializers.ValidationError('PIN must be exactly 6 digits')
        return str(value)

    def validate(self, attrs):
        attrs['slug'] = attrs.get('slug') or slugify(attrs['cafe_name'])
        if Cafe.objects.filter(slug=attrs['slug']).exists():
            raise serializers.ValidationError({'slug': 'A cafe with this slug already exists'})
        return attrs

    @transaction.atomic
    def create(self, validated_data):
        owner = CustomUser(
            email=validated_data['owner_email'],
            first_name=validated_data['owner_first_name'],
            last_name=validated_data.get('owner_last_name', ''),
            pin=validated_data.get('owner_pin', ''),
        )
        owner.set_password(validated_data['owner_password'])
        owner.save()

        cafe = Cafe.objects.create(
            name=validated_data['cafe_name'],
            slug=validated_data['slug'],
            location=validated_data.get('location', ''),
            address=validated_data.get('address', {}),
            phone=validated_data.get('phone', ''),
            timezone=validated_data.get('timezone', 'UTC'),
            owner=owner,
        )

        employee = Employee.objects.create(
            cafe=cafe,
            user=owner,
            role=OWNER,
            permissions=['all'],
            assigned_by=owner,
        )
        counter = Counter.objects.create(cafe=cafe, number=1, name='Main Counter')

        return {
            'cafe': cafe,
            'owner': owner,
            'employee': employee,
            'counter': counter,
        }


class CafeSettingsSerializer(serializers.Serializer):
    """Per-cafe overrides of the business defaults"""
    tax_rate = serializers.DecimalField(max_digits=5, decimal_places=4, min_value=Decimal('0'), max_value=Decimal('1'), required=False)
    service_fee_rate = serializers.DecimalField(max_digits=5, decimal_places=4, min_value=Decimal('0'), max_value=Decimal('1'), required=False)
    delivery_fee = serializers.DecimalField(max_digits=8, decimal_places=2, min_value=Decimal('0'), required=False)
    minimum_order_amount = serializers.DecimalField(max_digits=8, decimal_places=2, min_value=Decimal('0'), required=False)
    currency = serializers.CharField(max_length=3, required=False)
    max_cart_items = serializers.IntegerField(min_value=1, required=False)
    max_quantity_per_item = serializers.IntegerField(min_value=1, required=False)
    points_per_currency_unit = serializers.IntegerField(min_value=0, required=False)
    welcome_bonus_points = serializers.IntegerField(min_value=0, required=False)
    referral_bonus_points = serializers.IntegerField(min_value=0, required=False)

    def to_representation(self, cafe):
        data = {}
        for name in self.fields:
            value = cafe.get_setting(name)
            data[name] = str(value) if isinstance(value, Decimal) else value
        return data

    def update(self, cafe, validated_data):
        overrides = dict(cafe.settings or {})
        for key, value in validated_data.items():
            # JSONField cannot hold Decimals
            overrides[key] = str(value) if isinstance(value, Decimal) else value
        cafe.settings = overrides
        cafe.save(update_fields=['settings', 'updated_at'])
        return cafe
