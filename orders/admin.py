from django.contrib import admin
from .lifecycle import OrderLifecycleManager
from .models import Order, OrderItem, Payment, Logistic, Cart, CartItem


class ReconciliationFilter(admin.SimpleListFilter):
    """Gateway orders that moved past Pending without a Payment row"""
    title = "payment reconciliation"
    parameter_name = "reconciliation"

    def lookups(self, request, model_admin):
        return (
            ("unreconciled", "Confirmed without payment"),
        )

    def queryset(self, request, queryset):
        if self.value() == "unreconciled":
            return queryset.filter(pk__in=OrderLifecycleManager.find_unreconciled_orders().values("pk"))
        return queryset


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ('product_id', 'product_name', 'price', 'quantity')  # Snapshotted at checkout
    can_delete = False


class PaymentInline(admin.StackedInline):
    model = Payment
    extra = 0
    readonly_fields = ('transaction_id', 'user_id', 'amount', 'method', 'status', 'payment_date')
    can_delete = False


class LogisticInline(admin.StackedInline):
    model = Logistic
    extra = 0
    readonly_fields = ('logistic_name', 'tracking_number', 'logistic_status', 'created_at', 'updated_at')
    can_delete = False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = (
        "order_id",
        "user_id",
        "seller",
        "payment_method",
        "status",
        "total_price",
        "created_at",
    )

    list_filter = (
        "status",
        "payment_method",
        ReconciliationFilter,
        "created_at",
    )

    search_fields = (
        "order_id",
        "user_id",
        "seller__seller_id",
        "payment__transaction_id",
        "logistic__tracking_number",
    )

    # Status only moves through the lifecycle, never by hand
    readonly_fields = (
        'order_id',
        'user_id',
        'seller',
        'total_price',
        'payment_method',
        'status',
        'failure_reason',
        'created_at',
        'updated_at',
    )

    inlines = [OrderItemInline, PaymentInline, LogisticInline]

    fieldsets = (
        ("Order", {
            "fields": (
                "order_id",
                "user_id",
                "seller",
            )
        }),
        ("Payment & Pricing", {
            "fields": (
                "payment_method",
                "total_price",
            )
        }),
        ("Order Status", {
            "fields": ("status", "failure_reason")
        }),
        ("System Metadata", {
            "fields": (
                "created_at",
                "updated_at",
            ),
            "classes": ("collapse",)
        }),
    )

    def get_queryset(self, request):
        return super().get_queryset(request).select_related('seller').prefetch_related('items')


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("transaction_id", "order", "user_id", "amount", "method", "status", "payment_date")
    list_filter = ("method", "status", ("payment_date", admin.DateFieldListFilter))
    search_fields = ("transaction_id", "order__order_id", "user_id")
    readonly_fields = ("order", "user_id", "amount", "transaction_id", "method", "status", "payment_date")
    list_select_related = ("order",)


@admin.register(Logistic)
class LogisticAdmin(admin.ModelAdmin):
    list_display = ("order", "logistic_name", "tracking_number", "logistic_status", "updated_at")
    list_filter = ("logistic_name", "logistic_status")
    search_fields = ("order__order_id", "tracking_number")
    list_select_related = ("order",)


class CartItemInline(admin.TabularInline):
    model = CartItem
    extra = 0
    fields = ('product', 'quantity', 'price', 'added_at')
    readonly_fields = ('added_at',)


@admin.register(Cart)
class CartAdmin(admin.ModelAdmin):
    list_display = ("user_id", "cart_total", "updated_at")
    search_fields = ("user_id",)
    inlines = [CartItemInline]

    @admin.display(description="Total")
    def cart_total(self, obj):
        return obj.total
