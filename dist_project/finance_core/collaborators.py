"""
Thin adapters around the services the finance core consumes but does not own:
who is acting, where documents are stored, and how users get notified.
"""
import logging
import threading
import uuid
from contextlib import contextmanager
from functools import partial

from django.core.exceptions import PermissionDenied
from django.core.files.base import ContentFile
from django.core.files.storage import default_storage
from django.db import transaction
from django.utils.module_loading import import_string

from .conf import finance_setting

logger = logging.getLogger(__name__)

_state = threading.local()


# ---------- Identity ----------
def set_current_actor(user):
    _state.actor = user


def current_actor():
    user = getattr(_state, "actor", None)
    # AnonymousUser counts as "nobody"
    if user is not None and not getattr(user, "is_authenticated", False):
        return None
    return user


def current_actor_id():
    user = current_actor()
    return user.pk if user else None


def current_actor_is_read_only():
    user = current_actor()
    if user is None or user.is_superuser:
        return False
    group = finance_setting("ACTOR_READ_ONLY_GROUP")
    return user.groups.filter(name=group).exists()


@contextmanager
def acting_as(user):
    """Run a block on behalf of ``user`` (Celery tasks, commands, tests)."""
    previous = getattr(_state, "actor", None)
    set_current_actor(user)
    try:
        yield user
    finally:
        set_current_actor(previous)


def resolve_actor(user=None):
    """Explicit user wins, otherwise whoever the request/task is acting as."""
    return user if user is not None else current_actor()


def ensure_writable():
    if current_actor_is_read_only():
        raise PermissionDenied("Read-only users cannot change financial records.")


# ---------- Documents ----------
def store_document(content, name=None):
    """Persist raw bytes and return the URL the document can be fetched from."""
    folder = finance_setting("DOCUMENT_UPLOAD_DIR")
    filename = name or f"{uuid.uuid4().hex}.bin"
    saved_name = default_storage.save(f"{folder}/{filename}", ContentFile(content))
    return default_storage.url(saved_name)


# ---------- Notifications ----------
def _dispatch(user_id, kind, payload):
    notifier = import_string(finance_setting("NOTIFIER"))
    # Celery tasks are queued, plain callables are called
    if hasattr(notifier, "delay"):
        notifier.delay(user_id, kind, payload)
    else:
        notifier(user_id, kind, payload)


def notify(user_id, kind, payload):
    """Fire-and-forget: delivered after commit, failures are only logged."""
    if user_id is None:
        logger.debug("Dropping %s notification without recipient", kind)
        return
    transaction.on_commit(partial(_dispatch, user_id, kind, payload), robust=True)
