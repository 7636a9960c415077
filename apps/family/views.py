import uuid

from rest_framework import viewsets, status, mixins
from rest_framework.decorators import action
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema, OpenApiParameter

from .realtime import changes_since, next_poll_time, parse_since
from .serializers import (
    FamilyConnectionCreateSerializer,
    FamilyConnectionSerializer,
    FamilyInvitationCreateSerializer,
    FamilyInvitationSerializer,
    FamilyMembershipSerializer,
    FamilyOwnershipTransferCreateSerializer,
    FamilyOwnershipTransferSerializer,
    FamilyTreeSerializer,
    FamilyUnitCreateSerializer,
    FamilyUnitMinimalSerializer,
    FamilyUnitSerializer,
    FamilyUnitUpdateSerializer,
    PendingFamilyProfileCreateSerializer,
    PendingFamilyProfileSerializer,
    ProfileUpgradeSerializer,
    RespondSerializer,
    SetParentSerializer,
    TokenSerializer,
)
from .services import (
    create_family_unit,
    update_family_unit,
    deactivate_family_unit,
    get_family_units,
    get_family_members,
    get_member_unit,
    search_family_units,
    set_parent_family_unit,
    get_family_tree,
    send_family_invitation,
    cancel_invitation,
    resend_invitation,
    lookup_invitation,
    accept_invitation,
    decline_invitation,
    get_unit_invitations,
    send_connection,
    respond_to_connection,
    cancel_connection,
    get_unit_connections,
    initiate_transfer,
    respond_to_transfer,
    cancel_transfer,
    get_user_transfers,
    create_seed_profile,
    send_profile_claim_invitation,
    upgrade_profile_to_adult,
    claim_pending_profile,
    decline_profile_claim,
    delete_pending_profile,
    get_pending_profiles,
    get_claimable_profiles,
    # Exceptions
    FamilyServiceError,
    FamilyUnitNotFoundError,
    InvitationNotFoundError,
    ConnectionNotFoundError,
    TransferNotFoundError,
    ProfileNotFoundError,
    InsufficientPermissionsError,
    ValidationFailedError,
    InvalidStateTransitionError,
    FamilyConflictError,
)

UUID_PATTERN = r'[0-9a-fA-F-]{36}'

ERROR_STATUS = [
    ((FamilyUnitNotFoundError, InvitationNotFoundError,
      ConnectionNotFoundError, TransferNotFoundError,
      ProfileNotFoundError), status.HTTP_404_NOT_FOUND),
    (InsufficientPermissionsError, status.HTTP_403_FORBIDDEN),
    ((ValidationFailedError, InvalidStateTransitionError), status.HTTP_400_BAD_REQUEST),
    (FamilyConflictError, status.HTTP_409_CONFLICT),
]


def error_response(exc: FamilyServiceError) -> Response:
    """Translate a family service error into an error response."""
    for error_classes, status_code in ERROR_STATUS:
        if isinstance(exc, error_classes):
            return Response({'error': str(exc)}, status=status_code)
    return Response({'error': str(exc)}, status=status.HTTP_400_BAD_REQUEST)


def parse_unit_param(request):
    """The ``?family_unit=`` query parameter as a UUID, or None when missing or malformed."""
    try:
        return uuid.UUID(request.query_params.get('family_unit', ''))
    except ValueError:
        return None


class FamilyUnitPagination(PageNumberPagination):
    """Custom pagination for family units."""
    page_size = 20
    page_size_query_param = 'page_size'
    max_page_size = 100


class FamilyUnitViewSet(viewsets.ModelViewSet):
    """
    ViewSet for family units.

    All business logic is handled by services.

    list: Units the user anchors or belongs to
    create: Create a unit (optionally under a parent the user anchors)
    retrieve: Get a unit
    update/partial_update: Rename or edit metadata (trust anchor only)
    destroy: Deactivate the unit (trust anchor only)
    """

    serializer_class = FamilyUnitSerializer
    lookup_value_regex = UUID_PATTERN
    permission_classes = [IsAuthenticated]
    pagination_class = FamilyUnitPagination

    def get_queryset(self):
        return get_family_units(user=self.request.user).order_by('generation_level', 'family_label')

    def get_serializer_class(self):
        if self.action == 'create':
            return FamilyUnitCreateSerializer
        if self.action in ['update', 'partial_update']:
            return FamilyUnitUpdateSerializer
        return FamilyUnitSerializer

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            unit = create_family_unit(
                user=request.user,
                family_label=serializer.validated_data['family_label'],
                parent_family_unit_id=serializer.validated_data.get('parent_family_unit_id'),
                family_metadata=serializer.validated_data.get('family_metadata'),
            )
        except FamilyServiceError as e:
            return error_response(e)

        output_serializer = FamilyUnitSerializer(unit, context={'request': request})
        return Response(output_serializer.data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        partial = kwargs.pop('partial', False)
        serializer = FamilyUnitUpdateSerializer(data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)

        try:
            unit = update_family_unit(
                unit_id=self.kwargs['pk'],
                user=request.user,
                family_label=serializer.validated_data.get('family_label'),
                family_metadata=serializer.validated_data.get('family_metadata'),
            )
        except FamilyServiceError as e:
            return error_response(e)

        return Response(FamilyUnitSerializer(unit, context={'request': request}).data)

    def destroy(self, request, *args, **kwargs):
        try:
            deactivate_family_unit(unit_id=self.kwargs['pk'], user=request.user)
        except FamilyServiceError as e:
            return error_response(e)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=['get'])
    def members(self, request, pk=None):
        """Active members of the unit."""
        try:
            memberships = get_family_members(unit_id=pk, user=request.user)
        except FamilyServiceError as e:
            return error_response(e)
        return Response(FamilyMembershipSerializer(memberships, many=True).data)

    @action(detail=True, methods=['get'])
    def tree(self, request, pk=None):
        """Unit with its parent, children and pending connections."""
        try:
            tree = get_family_tree(unit_id=pk, user=request.user)
        except FamilyServiceError as e:
            return error_response(e)
        return Response(FamilyTreeSerializer(tree, context={'request': request}).data)

    @action(detail=True, methods=['post'])
    def set_parent(self, request, pk=None):
        """Move the unit under another unit the user anchors (or to the root)."""
        serializer = SetParentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            unit = set_parent_family_unit(
                unit_id=pk,
                user=request.user,
                parent_family_unit_id=serializer.validated_data.get('parent_family_unit_id'),
            )
        except FamilyServiceError as e:
            return error_response(e)

        return Response(FamilyUnitSerializer(unit, context={'request': request}).data)

    @extend_schema(parameters=[OpenApiParameter('since', str, description='ISO 8601 timestamp')])
    @action(detail=True, methods=['get'])
    def changes(self, request, pk=None):
        """Records of the unit updated after ``?since=``, for clients that missed pushed events."""
        try:
            since = parse_since(request.query_params.get('since'))
        except ValueError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        try:
            unit = get_member_unit(unit_id=pk, user=request.user)
        except FamilyServiceError as e:
            return error_response(e)

        server_time = next_poll_time()
        return Response({
            'server_time': server_time,
            'members': FamilyMembershipSerializer(
                changes_since(unit.memberships.select_related('member'), since), many=True
            ).data,
            'invitations': FamilyInvitationSerializer(
                changes_since(unit.invitations.select_related('family_unit', 'invited_by'), since),
                many=True,
            ).data,
            'connections': FamilyConnectionSerializer(
                changes_since(
                    (unit.child_connections.all() | unit.parent_connections.all())
                    .select_related('parent_family_unit', 'child_family_unit'),
                    since,
                ),
                many=True,
            ).data,
            'transfers': FamilyOwnershipTransferSerializer(
                changes_since(unit.ownership_transfers.select_related('family_unit'), since),
                many=True,
            ).data,
            'profiles': PendingFamilyProfileSerializer(
                changes_since(unit.pending_profiles.select_related('family_unit', 'created_by'), since),
                many=True,
            ).data,
        })

    @extend_schema(parameters=[OpenApiParameter('q', str, description='Label search term')])
    @action(detail=False, methods=['get'])
    def search(self, request):
        """Find other families to connect with by label."""
        units = search_family_units(user=request.user, term=request.query_params.get('q', ''))
        return Response(FamilyUnitMinimalSerializer(units, many=True).data)


class FamilyInvitationViewSet(mixins.CreateModelMixin, viewsets.GenericViewSet):
    """
    list: Invitations of ``?family_unit=``
    create: Invite someone to a unit by email
    cancel/resend: Manage a pending invitation (sender or trust anchor)
    lookup/accept/decline: Act on an invitation by token
    """

    serializer_class = FamilyInvitationSerializer
    lookup_value_regex = UUID_PATTERN
    permission_classes = [IsAuthenticated]
    pagination_class = None

    def get_permissions(self):
        if self.action == 'lookup':
            return [AllowAny()]
        return [IsAuthenticated()]

    @extend_schema(parameters=[OpenApiParameter('family_unit', str, required=True)])
    def list(self, request, *args, **kwargs):
        unit_id = parse_unit_param(request)
        if unit_id is None:
            return Response(
                {'error': 'family_unit must be a family unit id'},
                status=status.HTTP_400_BAD_REQUEST
            )

        try:
            invitations = get_unit_invitations(unit_id=unit_id, user=request.user)
        except FamilyServiceError as e:
            return error_response(e)
        return Response(FamilyInvitationSerializer(invitations, many=True).data)

    @extend_schema(request=FamilyInvitationCreateSerializer)
    def create(self, request, *args, **kwargs):
        serializer = FamilyInvitationCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            invitation = send_family_invitation(
                unit_id=data['family_unit_id'],
                invited_by=request.user,
                invitee_email=data['invitee_email'],
                relationship_role=data['relationship_role'],
                invitee_name=data['invitee_name'],
                personal_message=data['personal_message'],
            )
        except FamilyServiceError as e:
            return error_response(e)

        return Response(FamilyInvitationSerializer(invitation).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        try:
            invitation = cancel_invitation(invitation_id=pk, user=request.user)
        except FamilyServiceError as e:
            return error_response(e)
        return Response(FamilyInvitationSerializer(invitation).data)

    @action(detail=True, methods=['post'])
    def resend(self, request, pk=None):
        try:
            invitation = resend_invitation(invitation_id=pk, user=request.user)
        except FamilyServiceError as e:
            return error_response(e)
        return Response(FamilyInvitationSerializer(invitation).data)

    @extend_schema(parameters=[OpenApiParameter('token', str, required=True)])
    @action(detail=False, methods=['get'])
    def lookup(self, request):
        """Status of an invitation token for the landing page."""
        lookup_status, invitation = lookup_invitation(token=request.query_params.get('token', ''))
        return Response({
            'status': lookup_status,
            'invitation': FamilyInvitationSerializer(invitation).data if invitation else None,
        })

    @extend_schema(request=TokenSerializer)
    @action(detail=False, methods=['post'])
    def accept(self, request):
        serializer = TokenSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            membership = accept_invitation(
                token=serializer.validated_data['token'],
                user=request.user,
            )
        except FamilyServiceError as e:
            return error_response(e)

        return Response({
            'family_unit': FamilyUnitMinimalSerializer(membership.family_unit).data,
            'membership': FamilyMembershipSerializer(membership).data,
        }, status=status.HTTP_201_CREATED)

    @extend_schema(request=TokenSerializer)
    @action(detail=False, methods=['post'])
    def decline(self, request):
        serializer = TokenSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            invitation = decline_invitation(
                token=serializer.validated_data['token'],
                user=request.user,
            )
        except FamilyServiceError as e:
            return error_response(e)
        return Response(FamilyInvitationSerializer(invitation).data)


class FamilyConnectionViewSet(mixins.CreateModelMixin, viewsets.GenericViewSet):
    """
    list: Connections touching ``?family_unit=``
    create: Propose a connection to another unit
    respond: Approve or reject (receiving trust anchor)
    cancel: Withdraw (initiating side)
    """

    serializer_class = FamilyConnectionSerializer
    lookup_value_regex = UUID_PATTERN
    permission_classes = [IsAuthenticated]
    pagination_class = None

    @extend_schema(parameters=[OpenApiParameter('family_unit', str, required=True)])
    def list(self, request, *args, **kwargs):
        unit_id = parse_unit_param(request)
        if unit_id is None:
            return Response(
                {'error': 'family_unit must be a family unit id'},
                status=status.HTTP_400_BAD_REQUEST
            )

        try:
            connections = get_unit_connections(unit_id=unit_id, user=request.user)
        except FamilyServiceError as e:
            return error_response(e)
        return Response(FamilyConnectionSerializer(connections, many=True).data)

    @extend_schema(request=FamilyConnectionCreateSerializer)
    def create(self, request, *args, **kwargs):
        """201 for a new proposal, 200 when it approved the other side's matching proposal."""
        serializer = FamilyConnectionCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            connection = send_connection(
                user=request.user,
                from_unit_id=data['from_family_unit_id'],
                target_unit_id=data['target_family_unit_id'],
                connection_direction=data['connection_direction'],
                connection_type=data['connection_type'],
                personal_message=data['personal_message'],
            )
        except FamilyServiceError as e:
            return error_response(e)

        response_status = (
            status.HTTP_201_CREATED if connection.status == 'pending' else status.HTTP_200_OK
        )
        return Response(FamilyConnectionSerializer(connection).data, status=response_status)

    @extend_schema(request=RespondSerializer)
    @action(detail=True, methods=['post'])
    def respond(self, request, pk=None):
        serializer = RespondSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            connection = respond_to_connection(
                connection_id=pk,
                user=request.user,
                approve=serializer.validated_data['accept'],
            )
        except FamilyServiceError as e:
            return error_response(e)
        return Response(FamilyConnectionSerializer(connection).data)

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        try:
            connection = cancel_connection(connection_id=pk, user=request.user)
        except FamilyServiceError as e:
            return error_response(e)
        return Response(FamilyConnectionSerializer(connection).data)


class FamilyOwnershipTransferViewSet(mixins.CreateModelMixin, viewsets.GenericViewSet):
    """
    list: Transfers the user offered or received
    create: Offer a unit to someone else (trust anchor)
    respond: Accept or decline (proposed owner)
    cancel: Withdraw (current owner)
    """

    serializer_class = FamilyOwnershipTransferSerializer
    lookup_value_regex = UUID_PATTERN
    permission_classes = [IsAuthenticated]
    pagination_class = None

    def list(self, request, *args, **kwargs):
        transfers = get_user_transfers(user=request.user)
        return Response(FamilyOwnershipTransferSerializer(transfers, many=True).data)

    @extend_schema(request=FamilyOwnershipTransferCreateSerializer)
    def create(self, request, *args, **kwargs):
        serializer = FamilyOwnershipTransferCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            transfer = initiate_transfer(
                unit_id=data['family_unit_id'],
                user=request.user,
                proposed_owner_email=data['proposed_owner_email'],
                message=data['message'],
            )
        except FamilyServiceError as e:
            return error_response(e)

        return Response(
            FamilyOwnershipTransferSerializer(transfer).data,
            status=status.HTTP_201_CREATED
        )

    @extend_schema(request=RespondSerializer)
    @action(detail=True, methods=['post'])
    def respond(self, request, pk=None):
        serializer = RespondSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            transfer = respond_to_transfer(
                transfer_id=pk,
                user=request.user,
                accept=serializer.validated_data['accept'],
            )
        except FamilyServiceError as e:
            return error_response(e)
        return Response(FamilyOwnershipTransferSerializer(transfer).data)

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        try:
            transfer = cancel_transfer(transfer_id=pk, user=request.user)
        except FamilyServiceError as e:
            return error_response(e)
        return Response(FamilyOwnershipTransferSerializer(transfer).data)


class PendingFamilyProfileViewSet(mixins.CreateModelMixin, viewsets.GenericViewSet):
    """
    list: Profiles of ``?family_unit=``, or the ones the user created
    create: Seed a profile for a relative without an account
    destroy: Delete a profile (creator or trust anchor)
    send_invitation: Email the claim link of an adult profile
    upgrade: Turn a minor profile into an adult one
    claimable: Pending profiles seeded for the user's email
    claim/decline: Act on a profile by claim token
    """

    serializer_class = PendingFamilyProfileSerializer
    lookup_value_regex = UUID_PATTERN
    permission_classes = [IsAuthenticated]
    pagination_class = None

    @extend_schema(parameters=[OpenApiParameter('family_unit', str)])
    def list(self, request, *args, **kwargs):
        unit_id = None
        if 'family_unit' in request.query_params:
            unit_id = parse_unit_param(request)
            if unit_id is None:
                return Response(
                    {'error': 'family_unit must be a family unit id'},
                    status=status.HTTP_400_BAD_REQUEST
                )

        try:
            profiles = get_pending_profiles(user=request.user, unit_id=unit_id)
        except FamilyServiceError as e:
            return error_response(e)
        return Response(PendingFamilyProfileSerializer(profiles, many=True).data)

    @extend_schema(request=PendingFamilyProfileCreateSerializer)
    def create(self, request, *args, **kwargs):
        serializer = PendingFamilyProfileCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            profile = create_seed_profile(
                unit_id=data['family_unit_id'],
                user=request.user,
                first_name=data['first_name'],
                last_name=data['last_name'],
                email=data['email'],
                phone=data['phone'],
                relationship_label=data['relationship_label'],
                generation_level=data.get('generation_level'),
                member_type=data['member_type'],
                seed_data=data.get('seed_data'),
            )
        except FamilyServiceError as e:
            return error_response(e)

        return Response(
            PendingFamilyProfileSerializer(profile).data,
            status=status.HTTP_201_CREATED
        )

    def destroy(self, request, *args, **kwargs):
        try:
            delete_pending_profile(profile_id=self.kwargs['pk'], user=request.user)
        except FamilyServiceError as e:
            return error_response(e)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=['post'])
    def send_invitation(self, request, pk=None):
        try:
            profile = send_profile_claim_invitation(profile_id=pk, user=request.user)
        except FamilyServiceError as e:
            return error_response(e)
        return Response(PendingFamilyProfileSerializer(profile).data)

    @extend_schema(request=ProfileUpgradeSerializer)
    @action(detail=True, methods=['post'])
    def upgrade(self, request, pk=None):
        serializer = ProfileUpgradeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            profile = upgrade_profile_to_adult(
                profile_id=pk,
                user=request.user,
                email=serializer.validated_data.get('email') or None,
            )
        except FamilyServiceError as e:
            return error_response(e)
        return Response(PendingFamilyProfileSerializer(profile).data)

    @action(detail=False, methods=['get'])
    def claimable(self, request):
        profiles = get_claimable_profiles(user=request.user)
        return Response(PendingFamilyProfileSerializer(profiles, many=True).data)

    @extend_schema(request=TokenSerializer)
    @action(detail=False, methods=['post'])
    def claim(self, request):
        serializer = TokenSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            membership = claim_pending_profile(
                token=serializer.validated_data['token'],
                user=request.user,
            )
        except FamilyServiceError as e:
            return error_response(e)

        return Response({
            'family_unit': FamilyUnitMinimalSerializer(membership.family_unit).data,
            'membership': FamilyMembershipSerializer(membership).data,
        }, status=status.HTTP_201_CREATED)

    @extend_schema(request=TokenSerializer)
    @action(detail=False, methods=['post'])
    def decline(self, request):
        serializer = TokenSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            profile = decline_profile_claim(
                token=serializer.validated_data['token'],
                user=request.user,
            )
        except FamilyServiceError as e:
            return error_response(e)
        return Response(PendingFamilyProfileSerializer(profile).data)
