from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import views

app_name = 'relationships'

router = DefaultRouter()
router.register(r'', views.RelationshipCardViewSet, basename='relationship')

urlpatterns = [
    # Relationship ViewSet routes
    # GET    /api/relationships/                  - Sent and received cards (?status=)
    # POST   /api/relationships/                  - Invite by email
    # POST   /api/relationships/accept/           - Accept by token
    # GET    /api/relationships/changes/?since=   - Cards changed since a timestamp
    # POST   /api/relationships/{id}/reject/      - Reject (invitee)
    # POST   /api/relationships/{id}/cancel/      - Cancel (sender)
    # POST   /api/relationships/{id}/terminate/   - End relationship (either party)

    path('', include(router.urls)),
]
