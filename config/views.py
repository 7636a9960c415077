from django.http import JsonResponse


def health_check(request):
    """Health check for the hosting platform."""
    return JsonResponse({'status': 'ok'})


def error_404(request, exception):
    """Custom 404 handler."""
    return JsonResponse({
        'error': 'Not found',
        'status': 404
    }, status=404)


def error_500(request):
    """Custom 500 handler."""
    return JsonResponse({
        'error': 'An unexpected error occurred. Please try again.',
        'status': 500
    }, status=500)
