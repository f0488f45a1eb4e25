from apscheduler.schedulers.background import BackgroundScheduler
import atexit
from datetime import datetime
from carwash.extensions import db
from carwash.models import User

scheduler = BackgroundScheduler()


def expire_memberships(now=None):
    """Drop users whose membership has lapsed back to the free tier."""
    now = now or datetime.utcnow()
    expired_users = (
        db.session.query(User)
        .filter(
            User.subscription_status != "free",
            User.subscription_expiry.isnot(None),
            User.subscription_expiry < now,
        )
        .all()
    )
    for user in expired_users:
        user.subscription_status = "free"
        user.subscription_expiry = None
    if expired_users:
        db.session.commit()
    return len(expired_users)


def init_scheduler(app):
    """Initialize the APScheduler scheduler with Flask app context."""

    @scheduler.scheduled_job("interval", minutes=15)
    def scheduled_task():
        """Expire memberships whose subscription_expiry has passed."""
        current_time_str = datetime.now().strftime("%Y-%m-%d %H:%M:%S")

        try:
            with app.app_context():
                count = expire_memberships()
                if count:
                    print(
                        f"[SCHEDULER] {current_time_str} - Expired {count} membership(s)"
                    )
                else:
                    print(
                        f"[SCHEDULER] {current_time_str} - No memberships to expire"
                    )

        except Exception as e:
            print(
                f"[SCHEDULER] {current_time_str} - Error expiring memberships: {e}"
            )
            with app.app_context():
                db.session.rollback()

    if not scheduler.running:
        scheduler.start()
        print("[SCHEDULER] Scheduler started")
    else:
        print("[SCHEDULER] Scheduler already running (skipping duplicate start)")

    # Shut down the scheduler when exiting the app
    atexit.register(lambda: scheduler.shutdown())
