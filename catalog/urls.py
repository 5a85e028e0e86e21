from django.urls import path
from . import views

urlpatterns = [
   path('getSeller/<str:seller_id>/', views.get_seller, name="get_seller"),
   path('getProduct/<str:product_id>/', views.get_product, name="get_product"),
]
