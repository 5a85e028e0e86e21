from django.contrib import admin
from .models import Seller, Product


class ProductInline(admin.TabularInline):
    model = Product
    extra = 0
    fields = ('product_id', 'name', 'price', 'category', 'status')


@admin.register(Seller)
class SellerAdmin(admin.ModelAdmin):
    list_display = ('seller_id', 'name', 'email', 'city', 'status')
    list_filter = ('status', 'country')
    search_fields = ('seller_id', 'name', 'email')
    inlines = [ProductInline]


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ('product_id', 'name', 'category', 'price', 'status', 'seller')
    list_filter = ('category', 'status')
    search_fields = ('product_id', 'name', 'seller__name')
    list_select_related = ('seller',)

    fieldsets = (
        ('Product Details', {
            'fields': ('product_id', 'name', 'category', 'description', 'seller')
        }),
        ('Pricing & Availability', {
            'fields': ('price', 'status')
        }),
    )
