# pyright: reportUnknownMemberType=false
"""
Booking store: transactional persistence of appointments.

Every write that touches a shared slot runs inside BookingStore.transaction(),
which takes row locks on the booking_locks rows for the given keys before
the body runs and commits or rolls back as one unit. The store never caches
holder or queue state between transactions; every read goes to the database.
"""

import logging
from contextlib import contextmanager
from datetime import date
from typing import FrozenSet, Generator, List, Optional

from sqlalchemy import func, select, text, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from core.config import SLOT_LOCK_TIMEOUT_MS
from core.constants import ACTIVE_HOLDER_STATUSES, OPEN_BOOKING_STATUSES, STATUS_QUEUED
from core.exceptions import BookingError, ConcurrencyConflictError
from models import Appointment, BookingLock
from shared_types.slots import SlotKey
from utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


class BookingStore:
    """
    Slot-scoped read/compare/write operations on appointments.

    The store wraps a single session. Mutating helpers (add, set_status,
    shift_queue_down) flush but never commit; committing is the job of
    transaction(), so that a multi-row change is applied all at once or not
    at all.
    """

    def __init__(self, db: Session, lock_timeout_ms: int = SLOT_LOCK_TIMEOUT_MS):
        self.db = db
        self.lock_timeout_ms = lock_timeout_ms
        self._held_keys: Optional[FrozenSet[str]] = None

    @property
    def in_transaction(self) -> bool:
        """True while a transaction() block is running on this store."""
        return self._held_keys is not None

    @contextmanager
    def transaction(self, *lock_keys: str) -> Generator["BookingStore", None, None]:
        """
        Run a block as one serialized transaction scoped to the given lock keys.

        Locks are taken in sorted key order at the start of a fresh
        transaction (a read-only transaction already open on the session is
        committed first). Nested calls join the outer transaction as long as
        they only need keys the outer block already holds.

        Args:
            *lock_keys: Slot and customer/property lock keys to hold

        Yields:
            The store itself, for use inside the block

        Raises:
            ConcurrencyConflictError: If a lock could not be taken within the
                timeout or the database rejected the transaction. Nothing
                from the block is persisted.
            BookingError: Domain errors raised by the block propagate
                unchanged after the rollback.
        """
        keys = sorted(set(lock_keys))

        if self._held_keys is not None:
            missing = set(keys) - self._held_keys
            if missing:
                raise RuntimeError(
                    f"Cannot take locks {sorted(missing)} inside a transaction "
                    f"holding {sorted(self._held_keys)}"
                )
            yield self
            return

        if self.db.in_transaction():
            self.db.commit()

        self._held_keys = frozenset(keys)
        try:
            self._begin()
            self._acquire_locks(keys)
            yield self
            self.db.commit()
        except BookingError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"Booking transaction on {keys} rolled back: {e}")
            raise ConcurrencyConflictError() from e
        except Exception:
            self.db.rollback()
            raise
        finally:
            self._held_keys = None

    @contextmanager
    def read(self) -> Generator["BookingStore", None, None]:
        """
        Run unlocked reads with the same error mapping as transaction().

        SQLite starts every transaction with BEGIN IMMEDIATE, so even a read
        waits for the database write lock and can time out like a locked
        write. A read block opened on an idle session ends its own
        transaction; inside an open transaction it just joins it.

        Raises:
            ConcurrencyConflictError: If the database could not serve the read
                within the lock timeout
        """
        if self._held_keys is not None:
            yield self
            return

        owns_transaction = not self.db.in_transaction()
        try:
            if owns_transaction:
                self._begin()
            yield self
            if owns_transaction:
                self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"Booking read rolled back: {e}")
            raise ConcurrencyConflictError() from e
        except Exception:
            if owns_transaction:
                self.db.rollback()
            raise

    def _begin(self) -> None:
        """Open the session's transaction bounded by this store's lock timeout."""
        if self.db.in_transaction():
            return
        # Read by the SQLite begin hook; PostgreSQL uses SET LOCAL lock_timeout instead
        self.db.connection(execution_options={"busy_timeout_ms": self.lock_timeout_ms})

    def _acquire_locks(self, keys: List[str]) -> None:
        """Create (if needed) and lock one booking_locks row per key, in order."""
        dialect = self.db.get_bind().dialect.name

        if dialect == "postgresql":
            # Bound lock waits; exceeding it raises LockNotAvailable
            self.db.execute(text(f"SET LOCAL lock_timeout = '{int(self.lock_timeout_ms)}ms'"))

        for key in keys:
            self._ensure_lock_row(key, dialect)
            self.db.execute(
                select(BookingLock.lock_key)
                .where(BookingLock.lock_key == key)
                .with_for_update()
            ).one()

    def _ensure_lock_row(self, key: str, dialect: str) -> None:
        values = {"lock_key": key, "created_at": utc_now()}
        if dialect == "postgresql":
            self.db.execute(
                postgresql_insert(BookingLock).values(**values).on_conflict_do_nothing(
                    index_elements=["lock_key"]
                )
            )
        elif dialect == "sqlite":
            self.db.execute(
                sqlite_insert(BookingLock).values(**values).on_conflict_do_nothing(
                    index_elements=["lock_key"]
                )
            )
        elif self.db.get(BookingLock, key) is None:
            try:
                with self.db.begin_nested():
                    self.db.add(BookingLock(**values))
            except IntegrityError:
                # Another transaction created the row first; locking it below is enough
                logger.debug(f"Lock row {key} created concurrently")

    # Reads

    def get(self, appointment_id: int, for_update: bool = False) -> Optional[Appointment]:
        """
        Load an appointment by ID, always re-reading it from the database.

        Args:
            appointment_id: Appointment ID
            for_update: Lock the row until the transaction ends

        Returns:
            The appointment, or None if it does not exist
        """
        stmt = (
            select(Appointment)
            .where(Appointment.id == appointment_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self.db.execute(stmt).scalar_one_or_none()

    def find_active_holder(self, slot_key: SlotKey, exclude_id: Optional[int] = None) -> Optional[Appointment]:
        """Return the pending/confirmed appointment holding the slot, if any."""
        stmt = select(Appointment).where(
            *self._slot_filter(slot_key),
            Appointment.status.in_(ACTIVE_HOLDER_STATUSES),
        )
        if exclude_id is not None:
            stmt = stmt.where(Appointment.id != exclude_id)
        return self.db.execute(stmt.order_by(Appointment.id).limit(1)).scalar_one_or_none()

    def queued_entries(self, slot_key: SlotKey) -> List[Appointment]:
        """Return the slot's queued appointments ordered by queue position."""
        stmt = (
            select(Appointment)
            .where(*self._slot_filter(slot_key), Appointment.status == STATUS_QUEUED)
            .order_by(Appointment.queue_position.asc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def max_queue_position(self, slot_key: SlotKey) -> int:
        """Highest queue position for the slot, or 0 when nobody is queued."""
        stmt = select(func.coalesce(func.max(Appointment.queue_position), 0)).where(
            *self._slot_filter(slot_key),
            Appointment.status == STATUS_QUEUED,
        )
        return int(self.db.execute(stmt).scalar_one())

    def open_bookings_for_customer(
        self,
        customer_id: int,
        property_id: int,
        exclude_id: Optional[int] = None
    ) -> List[Appointment]:
        """Return the customer's pending/confirmed/queued appointments for a property."""
        stmt = select(Appointment).where(
            Appointment.customer_id == customer_id,
            Appointment.property_id == property_id,
            Appointment.status.in_(OPEN_BOOKING_STATUSES),
        )
        if exclude_id is not None:
            stmt = stmt.where(Appointment.id != exclude_id)
        return list(self.db.execute(stmt).scalars().all())

    def booked_times(self, property_id: int, slot_date: date) -> List[Appointment]:
        """Return the active holders for a property on a date."""
        stmt = select(Appointment).where(
            Appointment.property_id == property_id,
            Appointment.appointment_date == slot_date,
            Appointment.status.in_(ACTIVE_HOLDER_STATUSES),
        )
        return list(self.db.execute(stmt).scalars().all())

    # Writes (flush only; the enclosing transaction commits)

    def add(self, appointment: Appointment) -> Appointment:
        """Insert an appointment and flush to obtain its ID."""
        self._require_transaction()
        self.db.add(appointment)
        self.db.flush()
        return appointment

    def set_status(self, appointment: Appointment, status: str, queue_position: Optional[int] = None) -> Appointment:
        """
        Write a status and the matching queue position in one flush.

        queue_position must be given exactly when status is 'queued'.
        """
        self._require_transaction()
        if (status == STATUS_QUEUED) != (queue_position is not None):
            raise ValueError(
                f"queue_position must be set iff status is '{STATUS_QUEUED}' "
                f"(status={status!r}, queue_position={queue_position!r})"
            )
        appointment.status = status
        appointment.queue_position = queue_position
        self.db.flush()
        return appointment

    def shift_queue_down(self, slot_key: SlotKey, above_position: int) -> int:
        """
        Decrement the position of every queued entry behind above_position.

        Relative order is preserved: positions above_position+1..N become
        above_position..N-1.

        Returns:
            Number of appointments moved
        """
        self._require_transaction()
        stmt = (
            update(Appointment)
            .where(
                *self._slot_filter(slot_key),
                Appointment.status == STATUS_QUEUED,
                Appointment.queue_position > above_position,
            )
            .values(queue_position=Appointment.queue_position - 1)
            .execution_options(synchronize_session="fetch")
        )
        result = self.db.execute(stmt)
        self.db.flush()
        return result.rowcount or 0

    def _require_transaction(self) -> None:
        if self._held_keys is None:
            raise RuntimeError("Booking writes must run inside BookingStore.transaction()")

    @staticmethod
    def _slot_filter(slot_key: SlotKey):
        return (
            Appointment.property_id == slot_key.property_id,
            Appointment.appointment_date == slot_key.date,
            Appointment.appointment_time == slot_key.time,
        )
