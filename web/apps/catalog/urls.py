from django.urls import path

from . import views

app_name = "catalog"

urlpatterns = [
    path("customers/", views.CustomerCollectionView.as_view(), name="customers"),
    # file routes go first: "files/<name>/" would also match "<pk>/<rk>/"
    path("customers/files/", views.CustomerFilesView.as_view(), name="customer-files"),
    path("customers/files/<str:file_name>/", views.CustomerFileDetailView.as_view(), name="customer-file"),
    path("customers/<str:partition_key>/<str:row_key>/", views.CustomerDetailView.as_view(), name="customer-detail"),
    path("products/", views.ProductCollectionView.as_view(), name="products"),
    path("products/<str:partition_key>/<str:row_key>/", views.ProductDetailView.as_view(), name="product-detail"),
    path("orders/", views.OrderCollectionView.as_view(), name="orders"),
    path("orders/<str:partition_key>/<str:row_key>/", views.OrderDetailView.as_view(), name="order-detail"),
]
