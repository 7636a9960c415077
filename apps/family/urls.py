from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import views

app_name = 'family'

router = DefaultRouter()
router.register(r'units', views.FamilyUnitViewSet, basename='unit')
router.register(r'invitations', views.FamilyInvitationViewSet, basename='invitation')
router.register(r'connections', views.FamilyConnectionViewSet, basename='connection')
router.register(r'transfers', views.FamilyOwnershipTransferViewSet, basename='transfer')
router.register(r'profiles', views.PendingFamilyProfileViewSet, basename='profile')

urlpatterns = [
    # Unit ViewSet routes
    # GET    /api/family/units/                      - List user's units
    # POST   /api/family/units/                      - Create unit
    # GET    /api/family/units/{id}/                 - Get unit
    # PUT    /api/family/units/{id}/                 - Update unit (trust anchor)
    # DELETE /api/family/units/{id}/                 - Deactivate unit (trust anchor)
    # GET    /api/family/units/{id}/members/         - List members
    # GET    /api/family/units/{id}/tree/            - Parent, children, pending connections
    # POST   /api/family/units/{id}/set_parent/      - Move under another own unit
    # GET    /api/family/units/{id}/changes/?since=  - Records changed since a timestamp
    # GET    /api/family/units/search/?q=            - Search other families

    # Invitation ViewSet routes
    # GET    /api/family/invitations/?family_unit=   - Invitations of a unit
    # POST   /api/family/invitations/                - Invite by email
    # POST   /api/family/invitations/{id}/cancel/    - Cancel (sender or trust anchor)
    # POST   /api/family/invitations/{id}/resend/    - Resend email
    # GET    /api/family/invitations/lookup/?token=  - Token status (no auth)
    # POST   /api/family/invitations/accept/         - Accept by token
    # POST   /api/family/invitations/decline/        - Decline by token

    # Connection ViewSet routes
    # GET    /api/family/connections/?family_unit=   - Connections of a unit
    # POST   /api/family/connections/                - Propose connection
    # POST   /api/family/connections/{id}/respond/   - Approve/reject (receiving anchor)
    # POST   /api/family/connections/{id}/cancel/    - Withdraw (initiating side)

    # Transfer ViewSet routes
    # GET    /api/family/transfers/                  - Offered or received transfers
    # POST   /api/family/transfers/                  - Offer ownership
    # POST   /api/family/transfers/{id}/respond/     - Accept/decline (proposed owner)
    # POST   /api/family/transfers/{id}/cancel/      - Withdraw (current owner)

    # Pending profile ViewSet routes
    # GET    /api/family/profiles/?family_unit=      - Profiles of a unit (or own when omitted)
    # POST   /api/family/profiles/                   - Seed a profile
    # DELETE /api/family/profiles/{id}/              - Delete (creator or trust anchor)
    # POST   /api/family/profiles/{id}/send_invitation/ - Email the claim link
    # POST   /api/family/profiles/{id}/upgrade/      - Minor to adult
    # GET    /api/family/profiles/claimable/         - Profiles seeded for my email
    # POST   /api/family/profiles/claim/             - Claim by token
    # POST   /api/family/profiles/decline/           - Decline by token

    path('', include(router.urls)),
]
