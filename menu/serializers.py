from rest_framework import serializers

from .models import MenuCategory, MenuItem, Customization, CustomizationOption


class CustomizationOptionSerializer(serializers.ModelSerializer):
    class Meta:
        model = CustomizationOption
        fields = ['id', 'name', 'price_modifier', 'is_available', 'sort_order']


class CustomizationSerializer(serializers.ModelSerializer):
    options = CustomizationOptionSerializer(many=True, required=False)

    class Meta:
        model = Customization
        fields = [
            'id', 'name', 'customization_type', 'is_required', 'max_selections',
            'is_active', 'options', 'created_at'
        ]
        read_only_fields = ['created_at']

    def validate_name(self, value):
        """Validate unique customization name within cafe"""
        cafe = self.context.get('cafe')
        if cafe:
            queryset = Customization.objects.filter(cafe=cafe, name=value)
            if self.instance:
                queryset = queryset.exclude(id=self.instance.id)
            if queryset.exists():
                raise serializers.ValidationError("Customization with this name already exists in your cafe.")
        return value

    def create(self, validated_data):
        options_data = validated_data.pop('options', [])
        customization = Customization.objects.create(**validated_data)
        for option_data in options_data:
            CustomizationOption.objects.create(customization=customization, **option_data)
        return customization

    def update(self, instance, validated_data):
        options_data = validated_data.pop('options', None)

        for attr, value in validated_data.items():
            setattr(instance, attr, value)
        instance.save()

        if options_data is not None:
            instance.options.all().delete()
            for option_data in options_data:
                CustomizationOption.objects.create(customization=instance, **option_data)

        return instance


class MenuCategorySerializer(serializers.ModelSerializer):
    items_count = serializers.SerializerMethodField()

    class Meta:
        model = MenuCategory
        fields = ['id', 'name', 'description', 'image_url', 'sort_order', 'is_active', 'items_count', 'created_at']
        read_only_fields = ['created_at', 'items_count']

    def get_items_count(self, obj):
        return obj.items.filter(status='AVAILABLE').count()

    def validate_name(self, value):
        """Validate unique category name within cafe"""
        cafe = self.context.get('cafe')
        if cafe:
            queryset = MenuCategory.objects.filter(cafe=cafe, name=value)
            if self.instance:
                queryset = queryset.exclude(id=self.instance.id)
            if queryset.exists():
                raise serializers.ValidationError("Category with this name already exists in your cafe.")
        return value


class MenuItemSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source='category.name', read_only=True)
    customizations_detail = CustomizationSerializer(source='customizations', many=True, read_only=True)
    is_orderable = serializers.ReadOnlyField()

    class Meta:
        model = MenuItem
        fields = [
            'id', 'category', 'category_name', 'name', 'description', 'price', 'status',
            'preparation_time', 'image_url', 'allergens', 'nutritional_info', 'sort_order',
            'is_featured', 'is_orderable', 'customizations', 'customizations_detail',
            'created_at', 'updated_at'
        ]
        read_only_fields = ['created_at', 'updated_at']
        extra_kwargs = {'customizations': {'write_only': True, 'required': False}}

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        cafe = self.context.get('cafe')
        if cafe is not None:
            self.fields['category'].queryset = MenuCategory.objects.filter(cafe=cafe)
            self.fields['customizations'].child_relation.queryset = Customization.objects.filter(cafe=cafe)

    def validate_name(self, value):
        cafe = self.context.get('cafe')
        if cafe:
            queryset = MenuItem.objects.filter(cafe=cafe, name=value)
            if self.instance:
                queryset = queryset.exclude(id=self.instance.id)
            if queryset.exists():
                raise serializers.ValidationError("Menu item with this name already exists in your cafe.")
        return value

    def validate_allergens(self, value):
        if not isinstance(value, list):
            raise serializers.ValidationError("Allergens must be a list.")
        return value


class PublicMenuItemSerializer(serializers.ModelSerializer):
    customizations = CustomizationSerializer(many=True, read_only=True)

    class Meta:
        model = MenuItem
        fields = [
            'id', 'name', 'description', 'price', 'preparation_time', 'image_url',
            'allergens', 'nutritional_info', 'is_featured', 'customizations'
        ]


class PublicMenuCategorySerializer(serializers.ModelSerializer):
    items = serializers.SerializerMethodField()

    class Meta:
        model = MenuCategory
        fields = ['id', 'name', 'description', 'image_url', 'items']

    def get_items(self, obj):
        items = [item for item in obj.items.all() if item.status == 'AVAILABLE']
        return PublicMenuItemSerializer(items, many=True).data
