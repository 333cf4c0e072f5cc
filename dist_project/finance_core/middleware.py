from django.utils.deprecation import MiddlewareMixin

from .collaborators import set_current_actor


class CurrentActorMiddleware(MiddlewareMixin):
    # Run on every request and remember who is acting,
    # so services can stamp created_by / check read-only access
    def process_request(self, request):
        user = getattr(request, "user", None)
        if user is not None and user.is_authenticated:
            set_current_actor(user)
        else:
            # Unauthenticated users
            set_current_actor(None)

    # Never leak the actor into the next request served by this thread
    def process_response(self, request, response):
        set_current_actor(None)
        return response
