from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import views

app_name = 'sharing'

router = DefaultRouter()
router.register(r'cards', views.UserCardViewSet, basename='card')
router.register(r'policies', views.SharingPolicyViewSet, basename='policy')

urlpatterns = [
    # Card ViewSet routes
    # GET    /api/sharing/cards/                   - List own cards
    # POST   /api/sharing/cards/                   - Create card
    # GET    /api/sharing/cards/{id}/              - Get own card
    # PUT    /api/sharing/cards/{id}/              - Update card (owner)
    # DELETE /api/sharing/cards/{id}/              - Delete card (owner)
    # GET    /api/sharing/cards/{id}/shared_view/  - Card as the caller may see it

    # Policy ViewSet routes
    # GET    /api/sharing/policies/?resource_id=   - Policies on a resource (owner)
    # POST   /api/sharing/policies/                - Create policy
    # DELETE /api/sharing/policies/{id}/           - Revoke policy (creator)

    path('parse/', views.parse_field_value, name='parse-field'),
    path('compositions/', views.field_compositions, name='compositions'),
    path('check/', views.check_access, name='check-permission'),

    path('', include(router.urls)),
]
