import django.core.validators
import django.db.models.deletion
from decimal import Decimal
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('authentication', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='MenuCategory',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('name', models.CharField(max_length=100)),
                ('description', models.TextField(blank=True)),
                ('image_url', models.URLField(blank=True)),
                ('sort_order', models.IntegerField(default=0)),
                ('is_active', models.BooleanField(default=True)),
                ('cafe', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='menu_categories', to='authentication.cafe')),
            ],
            options={
                'verbose_name_plural': 'Menu Categories',
                'db_table': 'menu_categories',
                'ordering': ['sort_order', 'name'],
                'unique_together': {('cafe', 'name')},
            },
        ),
        migrations.CreateModel(
            name='Customization',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('name', models.CharField(max_length=100)),
                ('customization_type', models.CharField(choices=[('SIZE', 'Size'), ('ADDON', 'Add-on'), ('MODIFIER', 'Modifier'), ('SUBSTITUTION', 'Substitution')], default='MODIFIER', max_length=20)),
                ('is_required', models.BooleanField(default=False)),
                ('max_selections', models.PositiveIntegerField(default=1)),
                ('is_active', models.BooleanField(default=True)),
                ('cafe', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='customizations', to='authentication.cafe')),
            ],
            options={
                'db_table': 'menu_customizations',
                'unique_together': {('cafe', 'name')},
            },
        ),
        migrations.CreateModel(
            name='CustomizationOption',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=100)),
                ('price_modifier', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=8)),
                ('is_available', models.BooleanField(default=True)),
                ('sort_order', models.IntegerField(default=0)),
                ('customization', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='options', to='menu.customization')),
            ],
            options={
                'db_table': 'menu_customization_options',
                'ordering': ['sort_order', 'id'],
            },
        ),
        migrations.CreateModel(
            name='MenuItem',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('name', models.CharField(max_length=255)),
                ('description', models.TextField(blank=True)),
                ('price', models.DecimalField(decimal_places=2, max_digits=10, validators=[django.core.validators.MinValueValidator(Decimal('0.00'))])),
                ('status', models.CharField(choices=[('AVAILABLE', 'Available'), ('UNAVAILABLE', 'Unavailable'), ('SEASONAL', 'Seasonal'), ('DISCONTINUED', 'Discontinued')], default='AVAILABLE', max_length=20)),
                ('preparation_time', models.PositiveIntegerField(default=5)),
                ('image_url', models.URLField(blank=True)),
                ('allergens', models.JSONField(blank=True, default=list)),
                ('nutritional_info', models.JSONField(blank=True, default=dict)),
                ('sort_order', models.IntegerField(default=0)),
                ('is_featured', models.BooleanField(default=False)),
                ('cafe', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='menu_items', to='authentication.cafe')),
                ('category', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='items', to='menu.menucategory')),
                ('customizations', models.ManyToManyField(blank=True, related_name='menu_items', to='menu.customization')),
            ],
            options={
                'db_table': 'menu_items',
                'ordering': ['sort_order', 'name'],
                'unique_together': {('cafe', 'name')},
            },
        ),
    ]
