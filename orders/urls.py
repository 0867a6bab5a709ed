from django.urls import path
from . import views

urlpatterns = [
    # Staff order management
    path('', views.OrderListCreateView.as_view(), name='order-list-create'),
    path('queue/', views.order_queue, name='order-queue'),
    path('<int:pk>/', views.OrderDetailView.as_view(), name='order-detail'),
    path('<int:pk>/status/', views.update_order_status, name='order-status'),
    path('<int:pk>/cancel/', views.cancel_order, name='order-cancel'),
    path('<int:pk>/assign-counter/', views.assign_counter, name='order-assign-counter'),

    # Payments
    path('<int:pk>/payments/', views.order_payments, name='order-payments'),
    path('<int:pk>/payment-summary/', views.payment_summary, name='order-payment-summary'),
    path('payments/<int:pk>/refund/', views.refund_payment, name='payment-refund'),

    # Store credit
    path('credit/<uuid:customer_id>/', views.customer_credit, name='customer-credit'),

    # Customer self service
    path('mine/', views.MyOrderListView.as_view(), name='my-orders'),
    path('mine/<int:pk>/', views.my_order_detail, name='my-order-detail'),
    path('mine/credit/', views.my_credit, name='my-credit'),

    # Cart
    path('cart/', views.cart_detail, name='cart-detail'),
    path('cart/items/', views.cart_add_item, name='cart-add-item'),
    path('cart/items/<str:line_id>/', views.cart_item, name='cart-item'),
    path('cart/discount/', views.cart_discount, name='cart-discount'),
    path('cart/tip/', views.cart_tip, name='cart-tip'),
    path('cart/order-type/', views.cart_order_type, name='cart-order-type'),
    path('cart/notes/', views.cart_notes, name='cart-notes'),
    path('cart/totals/', views.cart_totals, name='cart-totals'),
    path('cart/validate/', views.cart_validate, name='cart-validate'),
    path('cart/checkout/', views.cart_checkout, name='cart-checkout'),
    path('cart/export/', views.cart_export, name='cart-export'),
    path('cart/import/', views.cart_import, name='cart-import'),
]
