# =============================================================================
# core/services/booking_service.py - Booking & Payment Protocol
# =============================================================================
# Turns a paid (or free) request for a slot into exactly one booking row.
#
#   initiated -> paid -> booked | conflict_refunded | already_booked
#
# There is no lock held across the Stripe round trip. The unique index on
# bookings (venue_id, booking_date, booking_time) WHERE status <> 'cancelled'
# decides every race: insert optimistically, and if the insert loses, refund
# the loser. Verification is idempotent, so a client retry or a webhook
# arriving after the redirect both land on the same row.
# =============================================================================

import logging
from datetime import date, datetime, timedelta
from uuid import uuid4

from app.config import settings
from app.exceptions import (
    BookingNotFoundError,
    InvalidSessionError,
    SlotConflictError,
    UpstreamProviderError,
    ValidationError,
)
from core.availability import (
    find_overlapping_booking,
    is_on_slot_grid,
    is_within_booking_window,
)
from core.models.booking import (
    Booking,
    BookingRequest,
    BookingResult,
    BookingStatus,
    CancellationResult,
    CheckoutMode,
    CheckoutResult,
    PaymentState,
)
from core.models.venue import VenuePolicy
from core.services.availability_service import AvailabilityService, ScheduleInputs
from core.services.checkout import (
    KIND_BOOKING,
    refund_lost_race,
    retrieve_paid_session,
    start_checkout,
)
from lib.stripe_client import CheckoutSession, StripeClient, StripeClientError
from lib.supabase_client import SupabaseClient, SupabaseClientError, UniqueViolationError
from workers.dispatch import dispatch_booking_cancelled, dispatch_booking_confirmed

logger = logging.getLogger(__name__)


def _slot_label(request: BookingRequest) -> str:
    return f"{request.venue_id} {request.booking_date} {request.booking_time:%H:%M}"


def _rejected(request: BookingRequest, message: str, details: dict | None = None) -> ValidationError:
    logger.warning(f"Rejected request for {_slot_label(request)} ({request.duration_hours:g}h): {message}")
    return ValidationError(message, details=details)


def _conflict(request: BookingRequest, refunded: bool | None = None) -> SlotConflictError:
    return SlotConflictError(
        request.venue_id,
        request.booking_date.isoformat(),
        request.booking_time.strftime("%H:%M"),
        refunded=refunded,
    )


class BookingService:
    """Service for creating, verifying and cancelling bookings."""

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    @staticmethod
    def validate_request(request: BookingRequest, today: date | None = None) -> ScheduleInputs:
        """
        Check a request against the venue's schedule and policy.

        Raises:
            VenueNotFoundError: Unknown venue
            ValidationError: Outside the booking window, closed date,
                duration out of range, or a start time off the slot grid
            UpstreamProviderError: Supabase failure
        """
        today = today or date.today()
        inputs = AvailabilityService.load_schedule(request.venue_id, request.booking_date)
        policy = inputs.policy

        if not is_within_booking_window(request.booking_date, today, policy.booking_window_days):
            raise _rejected(
                request,
                "Date is outside the booking window",
                {"booking_window_days": policy.booking_window_days},
            )

        if inputs.is_blocked or inputs.hours is None or inputs.hours.is_closed:
            raise _rejected(request, "The venue is closed on this date")

        if not policy.min_duration_hours <= request.duration_hours <= policy.max_duration_hours:
            raise _rejected(
                request,
                "Duration is outside the venue's limits",
                {
                    "min_duration_hours": policy.min_duration_hours,
                    "max_duration_hours": policy.max_duration_hours,
                },
            )

        start = request.booking_time.hour * 60 + request.booking_time.minute
        if not is_on_slot_grid(inputs.hours, policy, start, request.duration_hours):
            raise _rejected(request, "Requested time is not a bookable slot")

        return inputs

    # -------------------------------------------------------------------------
    # Checkout
    # -------------------------------------------------------------------------

    @staticmethod
    def create_checkout(
        user_id: str,
        email: str | None,
        request: BookingRequest,
        today: date | None = None,
    ) -> CheckoutResult:
        """
        Start a booking.

        Price comes from the venue, never from the client. Free venues and
        owners without a completed Stripe Connect account are booked
        straight away (FREE / DEMO); everyone else gets a Stripe checkout
        URL (STRIPE).

        Raises:
            SlotConflictError: The slot is already taken (nothing charged)
        """
        inputs = BookingService.validate_request(request, today)
        venue = inputs.venue
        price = round(venue.price_per_hour * request.duration_hours, 2)

        if price <= 0:
            result = BookingService._book_direct(user_id, email, request, inputs, price, payment_intent_id=None)
            return CheckoutResult(mode=CheckoutMode.FREE, booking=result.booking, state=result.state)

        destination = BookingService._owner_payout_account(venue.owner_id)
        if not settings.stripe_enabled or destination is None:
            logger.info(f"Venue {venue.id} cannot take card payments, creating demo booking")
            result = BookingService._book_direct(
                user_id, email, request, inputs, price,
                payment_intent_id=f"demo_{uuid4().hex}",
                source="demo",
            )
            return CheckoutResult(mode=CheckoutMode.DEMO, booking=result.booking, state=result.state)

        start = request.booking_time.hour * 60 + request.booking_time.minute
        if find_overlapping_booking(inputs.bookings, start, request.duration_hours):
            raise _conflict(request)

        session = start_checkout(
            kind=KIND_BOOKING,
            price=price,
            product_name=f"Booking at {venue.name}",
            description=(
                f"{request.booking_date:%a, %b %d} at {request.booking_time:%H:%M} "
                f"({request.duration_hours:g}h)"
            ),
            metadata={
                "userId": user_id,
                "venueId": venue.id,
                "venueName": venue.name,
                "bookingDate": request.booking_date.isoformat(),
                "bookingTime": request.booking_time.strftime("%H:%M"),
                "durationHours": f"{request.duration_hours:g}",
                "price": f"{price:g}",
                "userEmail": email or "",
                "ownerId": venue.owner_id or "",
            },
            cancel_path=f"/venue/{venue.id}",
            customer_email=email,
            destination_account=destination,
        )

        logger.info(f"Checkout {session.id} started for {_slot_label(request)} by user {user_id}")
        return CheckoutResult(mode=CheckoutMode.STRIPE, url=session.url, session_id=session.id)

    @staticmethod
    def _owner_payout_account(owner_id: str | None) -> str | None:
        """The owner's Stripe Connect account, if onboarding is complete."""
        if not owner_id:
            return None
        try:
            profile = SupabaseClient.fetch_profile(owner_id)
        except SupabaseClientError as e:
            logger.error(f"Failed to load owner profile {owner_id}: {e}")
            raise UpstreamProviderError("supabase", {"owner_id": owner_id})

        if not profile or not profile.get("stripe_account_id") or not profile.get("stripe_onboarding_completed"):
            return None
        return profile["stripe_account_id"]

    # -------------------------------------------------------------------------
    # Verification
    # -------------------------------------------------------------------------

    @staticmethod
    def verify_payment(session_id: str | None, user_id: str | None = None) -> BookingResult:
        """
        Create the booking for a paid checkout session.

        Safe to call any number of times for the same session: the first
        successful call returns BOOKED, later ones ALREADY_BOOKED with the
        same row.

        Args:
            session_id: Stripe checkout session id
            user_id: Authenticated caller, or None from the Stripe webhook

        Raises:
            InvalidSessionError, SessionOwnershipError, PaymentIncompleteError
            SlotConflictError: Someone else holds the slot; details.refunded
                says whether the payment went back
            UpstreamProviderError: Supabase or Stripe unreachable
        """
        session = retrieve_paid_session(session_id, user_id, KIND_BOOKING)
        meta = session.metadata

        try:
            request = BookingRequest(
                venue_id=meta["venueId"],
                booking_date=meta["bookingDate"],
                booking_time=meta["bookingTime"],
                duration_hours=float(meta.get("durationHours") or 1),
            )
        except (KeyError, ValueError) as e:
            logger.error(f"Session {session.id} has unusable booking metadata: {e}")
            raise InvalidSessionError(session.id)

        payer_id = meta["userId"]
        row = {
            "user_id": payer_id,
            "venue_id": request.venue_id,
            "venue_name": meta.get("venueName"),
            "booking_date": request.booking_date.isoformat(),
            "booking_time": request.booking_time.strftime("%H:%M"),
            "duration_hours": request.duration_hours,
            "total_price": BookingService._paid_price(session),
            "status": BookingStatus.CONFIRMED.value,
            "payment_intent_id": session.payment_intent_id,
            "customer_email": meta.get("userEmail") or session.customer_email,
            "source": "online",
        }

        try:
            existing = SupabaseClient.find_active_booking(
                request.venue_id, request.booking_date, request.booking_time, user_id=payer_id
            )
            if existing and existing.get("payment_intent_id") == session.payment_intent_id:
                logger.info(f"Session {session.id} already booked as {existing.get('id')}")
                return BookingResult(booking=Booking(**existing), state=PaymentState.ALREADY_BOOKED)

            day_rows = SupabaseClient.fetch_bookings_for_date(request.venue_id, request.booking_date)
        except SupabaseClientError as e:
            logger.error(f"Verification of session {session.id} failed reading bookings: {e}")
            raise UpstreamProviderError("supabase", {"session_id": session.id})

        if existing:
            # Same payer, second paid session for a slot they already hold
            logger.warning(
                f"Session {session.id} duplicates booking {existing.get('id')} "
                f"at {_slot_label(request)}; refunding {session.payment_intent_id}"
            )
            raise _conflict(request, refunded=refund_lost_race(session, "duplicate"))

        start = request.booking_time.hour * 60 + request.booking_time.minute
        overlap = find_overlapping_booking([Booking(**r) for r in day_rows], start, request.duration_hours)
        if overlap is not None:
            if overlap.payment_intent_id and overlap.payment_intent_id == session.payment_intent_id:
                return BookingResult(booking=overlap, state=PaymentState.ALREADY_BOOKED)
            logger.warning(f"Paid session {session.id} overlaps booking {overlap.id} at {_slot_label(request)}")
            raise _conflict(request, refunded=refund_lost_race(session, "overlap"))

        result = BookingService._insert_guarded(row, request, session)
        if result.state == PaymentState.BOOKED:
            dispatch_booking_confirmed(
                result.booking.to_api(),
                customer_email=row["customer_email"],
                owner_id=meta.get("ownerId") or None,
            )
        return result

    @staticmethod
    def _paid_price(session: CheckoutSession) -> float:
        if session.amount_total is not None:
            return session.amount_total / 100
        return float(session.metadata.get("price") or 0)

    # -------------------------------------------------------------------------
    # Free / Demo
    # -------------------------------------------------------------------------

    @staticmethod
    def book_free(
        user_id: str,
        email: str | None,
        request: BookingRequest,
        today: date | None = None,
    ) -> BookingResult:
        """
        Book a zero-price slot without Stripe.

        Raises:
            ValidationError: The venue charges for this slot
            SlotConflictError: The slot is taken
        """
        inputs = BookingService.validate_request(request, today)
        price = round(inputs.venue.price_per_hour * request.duration_hours, 2)
        if price > 0:
            raise ValidationError("This venue requires payment; start a checkout instead")
        return BookingService._book_direct(user_id, email, request, inputs, price, payment_intent_id=None)

    @staticmethod
    def _book_direct(
        user_id: str,
        email: str | None,
        request: BookingRequest,
        inputs: ScheduleInputs,
        price: float,
        payment_intent_id: str | None,
        source: str = "online",
    ) -> BookingResult:
        """Idempotence check, overlap check, guarded insert, side effects."""
        start = request.booking_time.hour * 60 + request.booking_time.minute

        mine = next(
            (
                b for b in inputs.bookings
                if b.is_active and b.user_id == user_id and b.start_minutes == start
            ),
            None,
        )
        if mine is not None:
            return BookingResult(booking=mine, state=PaymentState.ALREADY_BOOKED)

        if find_overlapping_booking(inputs.bookings, start, request.duration_hours):
            raise _conflict(request)

        row = {
            "user_id": user_id,
            "venue_id": request.venue_id,
            "venue_name": inputs.venue.name,
            "booking_date": request.booking_date.isoformat(),
            "booking_time": request.booking_time.strftime("%H:%M"),
            "duration_hours": request.duration_hours,
            "total_price": price,
            "status": BookingStatus.CONFIRMED.value,
            "payment_intent_id": payment_intent_id,
            "customer_email": email,
            "source": source,
        }

        result = BookingService._insert_guarded(row, request, session=None)
        if result.state == PaymentState.BOOKED:
            dispatch_booking_confirmed(result.booking.to_api(), customer_email=email, owner_id=inputs.venue.owner_id)
        return result

    # -------------------------------------------------------------------------
    # Guarded Insert
    # -------------------------------------------------------------------------

    @staticmethod
    def _insert_guarded(
        row: dict,
        request: BookingRequest,
        session: CheckoutSession | None,
    ) -> BookingResult:
        """
        Insert the booking and settle a lost race.

        A unique violation means another request committed first. If that row
        is ours (same user and payment intent) this was a concurrent retry;
        otherwise the paid session is refunded and SlotConflictError raised.
        """
        try:
            inserted = SupabaseClient.insert_booking(row)
            booking = Booking(**inserted)
            logger.info(f"Booked {_slot_label(request)} for user {row['user_id']}: {booking.id}")
            return BookingResult(booking=booking, state=PaymentState.BOOKED)

        except UniqueViolationError:
            winner = BookingService._find_winner(request)
            if (
                winner is not None
                and winner.user_id == row["user_id"]
                and winner.payment_intent_id == row["payment_intent_id"]
            ):
                return BookingResult(booking=winner, state=PaymentState.ALREADY_BOOKED)

            logger.warning(f"Lost the race for {_slot_label(request)} (user {row['user_id']})")
            refunded = refund_lost_race(session, "slot_conflict") if session else None
            raise _conflict(request, refunded=refunded)

        except SupabaseClientError as e:
            logger.error(f"Booking insert failed for {_slot_label(request)}: {e}")
            raise UpstreamProviderError("supabase", {"venue_id": request.venue_id})

    @staticmethod
    def _find_winner(request: BookingRequest) -> Booking | None:
        try:
            row = SupabaseClient.find_active_booking(request.venue_id, request.booking_date, request.booking_time)
        except SupabaseClientError as e:
            logger.warning(f"Could not read the winning booking for {_slot_label(request)}: {e}")
            return None
        return Booking(**row) if row else None

    # -------------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------------

    @staticmethod
    def cancel_booking(
        booking_id: str,
        user_id: str,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> CancellationResult:
        """
        Cancel a booking on behalf of its customer.

        Paid bookings cancelled at least `cancellation_hours` before the
        start are refunded in full; later cancellations are not refunded.

        Raises:
            BookingNotFoundError: Unknown id, or another user's booking
            ValidationError: The booking has already started
            UpstreamProviderError: Supabase failure, or the refund failed
                (the booking is then left unchanged)
        """
        now = now or datetime.now()

        try:
            row = SupabaseClient.fetch_booking(booking_id)
        except SupabaseClientError as e:
            logger.error(f"Failed to load booking {booking_id}: {e}")
            raise UpstreamProviderError("supabase", {"booking_id": booking_id})

        if not row or row.get("user_id") != user_id:
            raise BookingNotFoundError(booking_id)

        booking = Booking(**row)
        if booking.status == BookingStatus.CANCELLED:
            return CancellationResult(booking=booking, refunded=False)

        starts_at = datetime.combine(booking.booking_date, booking.booking_time)
        if starts_at <= now:
            raise ValidationError("This booking has already started and can no longer be cancelled")

        policy = BookingService._policy_for(booking.venue_id)
        refundable = (
            booking.has_real_payment
            and starts_at - now >= timedelta(hours=policy.cancellation_hours)
        )

        refunded = False
        if refundable:
            try:
                StripeClient.create_refund(
                    booking.payment_intent_id,
                    metadata={"booking_id": booking.id or booking_id, "reason": reason or "cancelled"},
                    idempotency_key=f"cancel-{booking.id or booking_id}",
                )
                refunded = True
            except StripeClientError as e:
                logger.error(f"Refund for booking {booking_id} failed, leaving it confirmed: {e}")
                raise UpstreamProviderError("stripe", {"booking_id": booking_id})

        try:
            updated = SupabaseClient.update_booking(
                booking_id,
                {"status": BookingStatus.CANCELLED.value, "cancellation_reason": reason},
            )
        except SupabaseClientError as e:
            logger.error(f"Failed to mark booking {booking_id} cancelled (refunded={refunded}): {e}")
            raise UpstreamProviderError("supabase", {"booking_id": booking_id})

        cancelled = Booking(**updated) if updated else booking.model_copy(
            update={"status": BookingStatus.CANCELLED, "cancellation_reason": reason}
        )
        logger.info(f"Cancelled booking {booking_id} (refunded={refunded})")

        dispatch_booking_cancelled(cancelled.to_api(), customer_email=cancelled.customer_email, refunded=refunded)
        return CancellationResult(booking=cancelled, refunded=refunded)

    @staticmethod
    def _policy_for(venue_id: str) -> VenuePolicy:
        try:
            row = SupabaseClient.fetch_venue_policy(venue_id)
        except SupabaseClientError as e:
            logger.error(f"Failed to load policy for venue {venue_id}: {e}")
            raise UpstreamProviderError("supabase", {"venue_id": venue_id})
        return VenuePolicy(**row) if row else VenuePolicy()
