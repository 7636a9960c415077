from dataclasses import asdict

from rest_framework import viewsets, status, mixins
from rest_framework.decorators import action, api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema

from apps.accounts.models import User
from .granularity import (
    STANDARD_FIELD_COMPOSITIONS,
    compose_display_value,
    get_composition,
    parse_field,
    validate_components,
)
from .models import SharingPolicy, UserCard
from .serializers import (
    CheckPermissionSerializer,
    ParseFieldSerializer,
    SharingPolicyCreateSerializer,
    SharingPolicySerializer,
    UserCardSerializer,
)
from .services import (
    create_card,
    update_card,
    delete_card,
    get_shared_card_view,
    create_policy,
    revoke_policy,
    get_resource_policies,
    check_permission,
    # Exceptions
    CardNotFoundError,
    PolicyNotFoundError,
    ResourceNotFoundError,
    InvalidPolicyError,
    InvalidCardFieldsError,
    InsufficientPermissionsError,
)


class UserCardViewSet(viewsets.ModelViewSet):
    """
    ViewSet for profile cards.

    list/retrieve/update/destroy operate on the caller's own cards;
    shared_view returns any card as the caller is allowed to see it.
    """

    serializer_class = UserCardSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        return UserCard.objects.filter(owner=self.request.user).select_related('owner')

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            card = create_card(
                owner=request.user,
                title=serializer.validated_data['title'],
                fields=serializer.validated_data.get('fields', {}),
            )
        except InvalidCardFieldsError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        return Response(self.get_serializer(card).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        partial = kwargs.pop('partial', False)
        serializer = self.get_serializer(data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)

        try:
            card = update_card(
                card_id=self.kwargs['pk'],
                user=request.user,
                title=serializer.validated_data.get('title'),
                fields=serializer.validated_data.get('fields'),
            )
        except CardNotFoundError as e:
            return Response({'error': str(e)}, status=status.HTTP_404_NOT_FOUND)
        except InsufficientPermissionsError as e:
            return Response({'error': str(e)}, status=status.HTTP_403_FORBIDDEN)
        except InvalidCardFieldsError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        return Response(self.get_serializer(card).data)

    def destroy(self, request, *args, **kwargs):
        try:
            delete_card(card_id=self.kwargs['pk'], user=request.user)
        except CardNotFoundError as e:
            return Response({'error': str(e)}, status=status.HTTP_404_NOT_FOUND)
        except InsufficientPermissionsError as e:
            return Response({'error': str(e)}, status=status.HTTP_403_FORBIDDEN)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=['get', 'post'])
    def shared_view(self, request, pk=None):
        """Card as the caller may see it; POST carries a condition context."""
        context = request.data.get('context') if request.method == 'POST' else None
        try:
            view = get_shared_card_view(card_id=pk, viewer=request.user, context=context)
        except CardNotFoundError as e:
            return Response({'error': str(e)}, status=status.HTTP_404_NOT_FOUND)
        except InsufficientPermissionsError as e:
            return Response({'error': str(e)}, status=status.HTTP_403_FORBIDDEN)
        return Response(view)


class SharingPolicyViewSet(mixins.ListModelMixin,
                           mixins.CreateModelMixin,
                           mixins.DestroyModelMixin,
                           viewsets.GenericViewSet):
    """
    list: Active policies on ``?resource_id=`` (resource owner only)
    create: Share a resource with a user or the public
    destroy: Revoke a policy (creator only)
    """

    serializer_class = SharingPolicySerializer
    permission_classes = [IsAuthenticated]
    pagination_class = None

    def get_queryset(self):
        return SharingPolicy.objects.filter(created_by=self.request.user, is_active=True)

    def get_serializer_class(self):
        if self.action == 'create':
            return SharingPolicyCreateSerializer
        return SharingPolicySerializer

    def list(self, request, *args, **kwargs):
        resource_id = request.query_params.get('resource_id')
        if not resource_id:
            serializer = SharingPolicySerializer(
                self.get_queryset().prefetch_related('permissions'), many=True
            )
            return Response(serializer.data)

        try:
            policies = get_resource_policies(resource_id=resource_id, user=request.user)
        except ResourceNotFoundError as e:
            return Response({'error': str(e)}, status=status.HTTP_404_NOT_FOUND)
        except InsufficientPermissionsError as e:
            return Response({'error': str(e)}, status=status.HTTP_403_FORBIDDEN)

        return Response(SharingPolicySerializer(policies, many=True).data)

    def create(self, request, *args, **kwargs):
        serializer = SharingPolicyCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        granted_to = None
        if data.get('granted_to_email'):
            granted_to = User.objects.get_by_email(data['granted_to_email'])
            if granted_to is None:
                return Response(
                    {'error': f"No user registered with email {data['granted_to_email']}"},
                    status=status.HTTP_404_NOT_FOUND
                )

        try:
            policy = create_policy(
                resource_id=data['resource_id'],
                resource_type=data['resource_type'],
                granted_to=granted_to,
                created_by=request.user,
                permissions=data.get('permissions'),
                expires_at=data.get('expires_at'),
                conditions=data.get('conditions'),
                shared_components=data.get('shared_components'),
                template=data.get('template'),
            )
        except ResourceNotFoundError as e:
            return Response({'error': str(e)}, status=status.HTTP_404_NOT_FOUND)
        except InsufficientPermissionsError as e:
            return Response({'error': str(e)}, status=status.HTTP_403_FORBIDDEN)
        except InvalidPolicyError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        output_serializer = SharingPolicySerializer(policy)
        return Response(output_serializer.data, status=status.HTTP_201_CREATED)

    def destroy(self, request, *args, **kwargs):
        try:
            revoke_policy(policy_id=self.kwargs['pk'], user=request.user)
        except PolicyNotFoundError as e:
            return Response({'error': str(e)}, status=status.HTTP_404_NOT_FOUND)
        except InsufficientPermissionsError as e:
            return Response({'error': str(e)}, status=status.HTTP_403_FORBIDDEN)
        return Response(status=status.HTTP_204_NO_CONTENT)


@extend_schema(
    request=ParseFieldSerializer,
    description="Split a field value into granular components.",
    tags=['sharing'],
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def parse_field_value(request):
    """Parse a value and report its components, display string and errors."""
    serializer = ParseFieldSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    field_type = serializer.validated_data['field_type']
    composition = get_composition(field_type)
    if composition is None:
        return Response(
            {'error': f"Unknown field type: {field_type}"},
            status=status.HTTP_400_BAD_REQUEST
        )

    components = parse_field(field_type, serializer.validated_data['value'])
    return Response({
        'field_type': field_type,
        'components': components,
        'display': compose_display_value(components, composition) if components else '',
        'errors': validate_components(components, composition) if components else {},
    })


@extend_schema(
    description="Standard field compositions and their components.",
    tags=['sharing'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def field_compositions(request):
    """List the standard compositions keyed by field name."""
    return Response({
        key: asdict(composition)
        for key, composition in STANDARD_FIELD_COMPOSITIONS.items()
    })


@extend_schema(
    request=CheckPermissionSerializer,
    description="Evaluate whether the caller may perform an action on a resource.",
    tags=['sharing'],
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def check_access(request):
    serializer = CheckPermissionSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    decision = check_permission(
        user=request.user,
        resource_id=serializer.validated_data['resource_id'],
        action=serializer.validated_data['action'],
        context=serializer.validated_data.get('context'),
    )
    return Response({
        'granted': decision.granted,
        'reason': decision.reason,
        'policy_id': decision.policy.id if decision.policy else None,
    })
