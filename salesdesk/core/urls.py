from django.urls import path
from .views import CashierLoginView, CashierRefreshView, cashier_me

urlpatterns = [
    path('auth/login/', CashierLoginView.as_view(), name='auth-login'),
    path('auth/refresh/', CashierRefreshView.as_view(), name='auth-refresh'),
    path('auth/me/', cashier_me, name='auth-me'),
]
