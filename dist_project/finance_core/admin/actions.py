from django.contrib import admin, messages
from django.core.exceptions import PermissionDenied, ValidationError

from finance_core.exceptions import ConcurrencyConflict, ConsistencyError
from finance_core.services.allocation import reallocate_container_costs
from finance_core.services.reconciliation import (confirm_match, reject_match,
                                                  run_auto_match)
from finance_core.services.reservations import release_reservation

# Errors a service may refuse a row with; shown to the admin user instead of a 500
SERVICE_ERRORS = (ValidationError, ConsistencyError, ConcurrencyConflict, PermissionDenied)


def _apply(modeladmin, request, queryset, service, done_label):
    done = 0
    for obj in queryset:
        try:
            service(obj)
            done += 1
        except SERVICE_ERRORS as e:
            modeladmin.message_user(request, f"{obj}: {e}", level=messages.ERROR)
    if done:
        modeladmin.message_user(request, f"{done} {done_label}", level=messages.SUCCESS)


@admin.action(description="Reallocate landed costs")
def reallocate_containers(modeladmin, request, queryset):
    _apply(modeladmin, request, queryset,
           lambda c: reallocate_container_costs(c.pk), "container(s) reallocated")


@admin.action(description="Run auto-match over all unmatched lines")
def auto_match_lines(modeladmin, request, queryset):
    counts = run_auto_match(user=request.user)
    modeladmin.message_user(
        request,
        f"Matched {counts['matched_count']}, suggested {counts['suggested_count']}, "
        f"skipped {counts['skipped_count']}",
        level=messages.SUCCESS,
    )


@admin.action(description="Confirm suggested matches")
def confirm_matches(modeladmin, request, queryset):
    _apply(modeladmin, request, queryset,
           lambda line: confirm_match(line.pk, user=request.user), "match(es) confirmed")


@admin.action(description="Reject suggested matches")
def reject_matches(modeladmin, request, queryset):
    _apply(modeladmin, request, queryset,
           lambda line: reject_match(line.pk, user=request.user), "match(es) rejected")


@admin.action(description="Release selected reservations")
def release_reservations(modeladmin, request, queryset):
    _apply(modeladmin, request, queryset,
           lambda r: release_reservation(r.pk, "released from admin", user=request.user),
           "reservation(s) released")
