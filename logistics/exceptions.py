"""
LOGISTICS App - Dispatch & tracking errors
"""


class DispatchError(Exception):
    """Base class for dispatch-internal conditions."""


class NoCandidatesFound(DispatchError):
    """A round found nobody eligible. The coordinator escalates to the next radius."""


class OfferExpired(DispatchError):
    """The round an offer belongs to is no longer outstanding."""


class DispatchExhausted(DispatchError):
    """Every round of a run failed. Reported to the order owner; the order stays pending."""


class StaleAcceptance(Exception):
    """The order is no longer pending when a partner tries to accept it."""

    def __init__(self, message="Offer no longer available"):
        super().__init__(message)


class PartnerBusyError(Exception):
    """The accepting partner is already bound to another order."""


class InvalidOrderStateError(Exception):
    """A tracking or completion write hit an order in the wrong status."""


class InvalidTransition(InvalidOrderStateError):
    """The requested status change is not an allowed edge."""


class PartnerMismatchError(Exception):
    """The acting partner is not the one bound to the order."""


class RouteUnavailable(Exception):
    """The routing provider could not produce a route."""
