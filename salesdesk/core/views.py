"""
Cashier authentication.

Login hands out a JWT pair (inactive accounts are refused by simplejwt's
authentication rule) together with the cashier profile, so the sales screen
can show who is selling without a second request. SalesAPIClient.authenticate
only needs the ``access`` token from this response.
"""
import logging

from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer, TokenRefreshSerializer
from rest_framework.exceptions import AuthenticationFailed
from rest_framework_simplejwt.exceptions import InvalidToken
from django.contrib.auth import get_user_model
from .serializers import CashierSerializer

User = get_user_model()
logger = logging.getLogger(__name__)


class CashierLoginSerializer(TokenObtainPairSerializer):
    def validate(self, attrs):
        username = attrs.get(self.username_field)
        try:
            data = super().validate(attrs)
        except AuthenticationFailed:
            logger.warning(f"Login failed for {username}")
            raise
        data['usuario'] = CashierSerializer(self.user).data
        logger.info(f"Cashier {username} logged in")
        return data


class CashierLoginView(TokenObtainPairView):
    serializer_class = CashierLoginSerializer


class CashierRefreshSerializer(TokenRefreshSerializer):
    """Refresh that answers 401 instead of 500 when the cashier was deleted"""

    def validate(self, attrs):
        try:
            return super().validate(attrs)
        except User.DoesNotExist:
            raise InvalidToken('Token is invalid. User no longer exists.')


class CashierRefreshView(TokenRefreshView):
    serializer_class = CashierRefreshSerializer


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def cashier_me(request):
    """Profile of the logged-in cashier"""
    return Response(CashierSerializer(request.user).data)
