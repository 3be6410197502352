from __future__ import annotations


class RosterError(Exception):
    """Base for everything the roster engine raises on purpose."""

    code = "roster_error"
    notice = "Something went wrong with that request."
    detail_is_notice = False

    def __init__(self, detail: str | None = None, **context) -> None:
        self.context = dict(context)
        self.detail = detail or self.notice
        if detail and self.detail_is_notice:
            self.notice = detail
        super().__init__(self.detail)


# -------------------------
# Validation (user-facing, recoverable)
# -------------------------
class ValidationError(RosterError):
    code = "validation"
    detail_is_notice = True


class AlreadyEnrolled(ValidationError):
    code = "already_enrolled"
    notice = "It appears you are already on the roster or standby list for this event."


class NotEnrolled(ValidationError):
    code = "not_enrolled"
    notice = "It appears your name was not on the list for that event after all."


class GuestsNotAllowed(ValidationError):
    code = "guests_not_allowed"
    notice = "My apologies, but that roster does not permit guests."


class NoRosterSelected(ValidationError):
    code = "no_roster_selected"
    notice = "Please select a roster to join."


class InsufficientCapacity(ValidationError):
    code = "insufficient_capacity"
    notice = "My apologies, but there are not enough spots left for you and your guest(s) on that roster."


class InvalidCapacity(ValidationError):
    code = "invalid_capacity"
    notice = "A roster needs a name and a capacity of at least 1."


class InvalidGuestCount(ValidationError):
    code = "invalid_guest_count"
    notice = "The number of guests cannot be negative."


class LastRosterProtected(ValidationError):
    code = "last_roster_protected"
    notice = "An event must keep at least one roster."


class RosterOccupied(ValidationError):
    code = "roster_occupied"
    notice = "That roster still has participants; it can only be removed once empty."


class RosterNotFound(ValidationError):
    code = "roster_not_found"
    notice = "I could not find a roster by that name."


class EventNotFound(ValidationError):
    code = "event_not_found"
    notice = "I could not find that event."


class EventNotPublished(ValidationError):
    code = "event_not_published"
    notice = "That event has not been announced yet."


class AlreadySharedInChannel(ValidationError):
    code = "already_shared"
    notice = "It appears this proclamation has already been issued in that channel."


class ChannelNotConfigured(ValidationError):
    code = "channel_not_configured"
    notice = "I have not yet been configured for that channel. Run `!channel.configure` there first."


class ProfileNotFound(ValidationError):
    code = "profile_not_found"
    notice = "I could not find that event profile. Create it with `!profile.create` first."


class NotChannelAdmin(ValidationError):
    code = "not_channel_admin"
    notice = "My apologies, but only the channel administrator may perform this duty."


class InvalidEventDetails(ValidationError):
    code = "invalid_event_details"
    notice = "Those event details could not be understood."


# -------------------------
# Collaborators (logged, generic apology)
# -------------------------
class CollaboratorError(RosterError):
    code = "collaborator"
    notice = "A thousand pardons, a complication has arisen. Please try again shortly."


class StoreUnavailable(CollaboratorError):
    code = "store_unavailable"


class GatewayError(CollaboratorError):
    code = "gateway_error"


class CalendarError(CollaboratorError):
    code = "calendar_error"
    notice = "I was unable to add that event to your Google Calendar."


class CalendarNotAuthorized(CalendarError):
    code = "calendar_not_authorized"
    notice = "You have not yet connected your Google Calendar."

    def __init__(self, auth_url: str | None = None, **context) -> None:
        self.auth_url = auth_url
        super().__init__(None, **context)


# -------------------------
# Invariant violations (abort, critical log)
# -------------------------
class InvariantViolation(RosterError):
    code = "invariant_violation"
    notice = "A thousand pardons, that change could not be applied safely. Please try again."


class CapacityExceeded(InvariantViolation):
    code = "capacity_exceeded"


class DuplicateParticipant(InvariantViolation):
    code = "duplicate_participant"


class DuplicateLocation(InvariantViolation):
    code = "duplicate_location"


class InvalidStatusTransition(InvariantViolation):
    code = "invalid_status_transition"


class StaleRecord(InvariantViolation):
    code = "stale_record"


def describe_error(exc: BaseException) -> str:
    context = getattr(exc, "context", {}) or {}
    fields = " ".join(f"{k}={v}" for k, v in sorted(context.items()))
    base = f"{type(exc).__name__}: {str(exc)[:180]}"
    return f"{base} {fields}".strip()
