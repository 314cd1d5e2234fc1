#!/usr/bin/env python3
"""
Seed test data for exploring the follow-up queues and data audit locally.

Creates prospects covering the key scenarios:
  1. Missed guest (past booking, nothing logged)
  2. No-show, not rebooked
  3. Follow-up needed with a second intro already booked
  4. Second intro ran, still undecided
  5. Planning to reschedule
  6. Purchased (never shows up anywhere)
  7. Audit problems: corrupted owner, unlinked run, missing booked-by, bad outcome

Usage:
    python scripts/seed_test_data.py          # seed all scenarios
    python scripts/seed_test_data.py --clear  # wipe seeded data first

Requires: DATABASE_URL set (or defaults to sqlite:///local.db).
"""
import sys
import os
import uuid
import argparse
from datetime import date, datetime, timezone, timedelta

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from introdesk import create_app
from introdesk.database import get_session, engine, create_schema
from introdesk.models.booking import Booking
from introdesk.models.intro_run import IntroRun
from introdesk.models.followup_touch import FollowupTouch


# Prefix for seeded IDs so we can clear them
SEED_PREFIX = 'seed-'


def make_id():
    return SEED_PREFIX + str(uuid.uuid4())


def _booking(session, name, days_from_today, **extra):
    fields = dict(
        id=make_id(),
        member_name=name,
        class_date=date.today() + timedelta(days=days_from_today),
        intro_time='09:15',
        booking_status='Active',
        lead_source='Instagram DMs',
        coach_name='Nathan',
        booked_by='Grace',
        phone='555-0100',
    )
    fields.update(extra)
    booking = Booking(**fields)
    session.add(booking)
    return booking


def _run(session, booking, result, ran_by='Kayla', **extra):
    fields = dict(
        id=make_id(),
        member_name=booking.member_name if booking else extra.pop('member_name'),
        linked_booking_id=booking.id if booking else None,
        run_date=booking.class_date if booking else extra.pop('run_date'),
        class_time='09:15',
        result=result,
        ran_by=ran_by,
        lead_source='Instagram DMs',
        created_at=datetime.now(timezone.utc),
    )
    fields.update(extra)
    run = IntroRun(**fields)
    session.add(run)
    return run


def seed_follow_up_scenarios(session):
    _booking(session, 'Avery Collins', -1)
    print('  [1] Missed guest:        Avery Collins')

    b = _booking(session, 'Jordan Blake', -4)
    _run(session, b, 'No-show', ran_by=None)
    session.add(FollowupTouch(id=make_id(), booking_id=b.id, member_name=b.member_name,
                              touch_type='text', channel='sms', script_category='no_show',
                              created_by='Grace', created_at=datetime.now(timezone.utc)))
    print('  [2] No-show:             Jordan Blake')

    first = _booking(session, 'Riley Chen', -6)
    _run(session, first, 'Follow-up needed')
    _booking(session, 'Riley Chen', 3, originating_booking_id=first.id)
    print('  [3] Second intro booked: Riley Chen')

    first = _booking(session, 'Morgan Diaz', -14)
    _run(session, first, 'Booked 2nd intro')
    second = _booking(session, 'Morgan Diaz', -7, originating_booking_id=first.id)
    _run(session, second, '')
    print('  [4] Second intro ran:    Morgan Diaz')

    _booking(session, 'Casey Park', -3, booking_status='Planning to reschedule',
             reschedule_contact_date=date.today() + timedelta(days=1))
    print('  [5] Plans to reschedule: Casey Park')

    old = _booking(session, 'Taylor Nguyen', -20)
    _run(session, old, 'Follow-up needed')
    later = _booking(session, 'Taylor Nguyen', -10)
    _run(session, later, 'Premier + OTBeat', commission_amount=15.0)
    print('  [6] Purchased:           Taylor Nguyen')


def seed_audit_scenarios(session):
    b = _booking(session, 'Sam Ortiz', -9, intro_owner='2026-01-05T10:00:00',
                 intro_owner_locked=True)
    _run(session, b, 'Closed', ran_by='Sophie')
    _run(session, None, 'Follow-up needed', member_name='Sam Ortiz',
         run_date=date.today() - timedelta(days=2))
    _booking(session, 'Jamie Fox', -5, booked_by='TBD')
    b = _booking(session, 'Drew Hale', -8)
    _run(session, b, 'folow up neded')
    print('  [7] Audit issues:        Sam Ortiz, Jamie Fox, Drew Hale')


# ── Clear / Main ─────────────────────────────────────────────────────────────

def clear_seeded_data(session):
    """Remove all seeded bookings, runs, and touches."""
    deleted = 0
    for model in (FollowupTouch, IntroRun, Booking):
        deleted += session.query(model).filter(model.id.like(f'{SEED_PREFIX}%')).delete(
            synchronize_session=False)
    session.commit()
    if not deleted:
        print('No seeded data found.')
        return
    print(f'Cleared {deleted} seeded rows.')


def main():
    parser = argparse.ArgumentParser(description='Seed intro data for local exploration')
    parser.add_argument('--clear', action='store_true', help='Clear seeded data before (or instead of) seeding')
    parser.add_argument('--clear-only', action='store_true', help='Only clear, do not re-seed')
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        # Ensure tables exist (for SQLite local dev)
        create_schema(engine)

        session = get_session()
        try:
            if args.clear or args.clear_only:
                clear_seeded_data(session)
                if args.clear_only:
                    return

            print('Seeding test data...')
            seed_follow_up_scenarios(session)
            seed_audit_scenarios(session)
            session.commit()
            print('\nDone! Try GET http://localhost:8080/api/follow-ups and /api/audit.')

        except Exception as e:
            session.rollback()
            print(f'Error: {e}')
            raise
        finally:
            session.close()


if __name__ == '__main__':
    main()
