from django.db.models import Q
from rest_framework import viewsets, status, mixins
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema, OpenApiParameter

from apps.family.realtime import changes_since, next_poll_time, parse_since
from .models import RelationshipCard
from .serializers import (
    AcceptRelationshipSerializer,
    RelationshipCardSerializer,
    RelationshipInvitationSerializer,
    RelationshipStatusFilterSerializer,
)
from .services import (
    create_relationship_invitation,
    accept_relationship_invitation,
    reject_relationship_invitation,
    cancel_relationship_invitation,
    terminate_relationship,
    get_user_relationships,
    # Exceptions
    RelationshipsServiceError,
    RelationshipNotFoundError,
    InsufficientPermissionsError,
    DuplicateRelationshipError,
)


def error_response(exc: RelationshipsServiceError) -> Response:
    if isinstance(exc, RelationshipNotFoundError):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, InsufficientPermissionsError):
        status_code = status.HTTP_403_FORBIDDEN
    elif isinstance(exc, DuplicateRelationshipError):
        status_code = status.HTTP_409_CONFLICT
    else:
        status_code = status.HTTP_400_BAD_REQUEST
    return Response({'error': str(exc)}, status=status_code)


class RelationshipCardViewSet(mixins.CreateModelMixin, viewsets.GenericViewSet):
    """
    list: Cards the user sent or received (``?status=`` filters)
    create: Invite someone into a relationship by email
    accept: Accept an invitation by token
    reject/cancel: Close a pending invitation (invitee / sender)
    terminate: End an active relationship (either party)
    """

    serializer_class = RelationshipCardSerializer
    lookup_value_regex = r'[0-9a-fA-F-]{36}'
    permission_classes = [IsAuthenticated]
    pagination_class = None

    @extend_schema(parameters=[RelationshipStatusFilterSerializer])
    def list(self, request, *args, **kwargs):
        filters = RelationshipStatusFilterSerializer(data=request.query_params)
        filters.is_valid(raise_exception=True)

        cards = get_user_relationships(
            user=request.user,
            status=filters.validated_data.get('status'),
        )
        return Response(RelationshipCardSerializer(cards, many=True).data)

    @extend_schema(request=RelationshipInvitationSerializer)
    def create(self, request, *args, **kwargs):
        serializer = RelationshipInvitationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            card = create_relationship_invitation(
                from_user=request.user,
                to_user_email=data['to_user_email'],
                relationship_label_from=data['relationship_label_from'],
                relationship_label_to=data['relationship_label_to'],
                metadata=data.get('metadata'),
                shared_attributes=data.get('shared_attributes'),
                network_rules=data['network_rules'],
            )
        except RelationshipsServiceError as e:
            return error_response(e)

        return Response(RelationshipCardSerializer(card).data, status=status.HTTP_201_CREATED)

    @extend_schema(request=AcceptRelationshipSerializer)
    @action(detail=False, methods=['post'])
    def accept(self, request):
        serializer = AcceptRelationshipSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            card = accept_relationship_invitation(
                token=serializer.validated_data['token'],
                user=request.user,
                modified_label_to=serializer.validated_data.get('modified_label_to'),
            )
        except RelationshipsServiceError as e:
            return error_response(e)

        return Response(RelationshipCardSerializer(card).data)

    @action(detail=True, methods=['post'])
    def reject(self, request, pk=None):
        try:
            card = reject_relationship_invitation(card_id=pk, user=request.user)
        except RelationshipsServiceError as e:
            return error_response(e)
        return Response(RelationshipCardSerializer(card).data)

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        try:
            card = cancel_relationship_invitation(card_id=pk, user=request.user)
        except RelationshipsServiceError as e:
            return error_response(e)
        return Response(RelationshipCardSerializer(card).data)

    @action(detail=True, methods=['post'])
    def terminate(self, request, pk=None):
        try:
            card = terminate_relationship(card_id=pk, user=request.user)
        except RelationshipsServiceError as e:
            return error_response(e)
        return Response(RelationshipCardSerializer(card).data)

    @extend_schema(parameters=[OpenApiParameter('since', str, description='ISO 8601 timestamp')])
    @action(detail=False, methods=['get'])
    def changes(self, request):
        """Cards involving the user updated after ``?since=``."""
        try:
            since = parse_since(request.query_params.get('since'))
        except ValueError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        user = request.user
        cards = changes_since(
            RelationshipCard.objects
            .filter(
                Q(from_user=user) |
                Q(to_user=user) |
                Q(to_user__isnull=True, to_user_email__iexact=user.email)
            )
            .select_related('from_user', 'to_user'),
            since,
        )
        return Response({
            'server_time': next_poll_time(),
            'relationships': RelationshipCardSerializer(cards, many=True).data,
        })
