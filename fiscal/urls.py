# fiscal/urls.py

from django.urls import path

from fiscal.views.item_views import items_view
from fiscal.views.stock_views import inventory_view, purchases_view
from fiscal.views.transaction_views import (
    TransactionDetailView,
    TransactionListView,
    sign_transaction_view,
)

app_name = "fiscal"

urlpatterns = [
    path("transactions/sign/", sign_transaction_view, name="transaction-sign"),
    path("transactions/", TransactionListView.as_view(), name="transaction-list"),
    path(
        "transactions/<uuid:transaction_id>/",
        TransactionDetailView.as_view(),
        name="transaction-detail",
    ),
    path("items/", items_view, name="items"),
    path("purchases/", purchases_view, name="purchases"),
    path("inventory/", inventory_view, name="inventory"),
]
