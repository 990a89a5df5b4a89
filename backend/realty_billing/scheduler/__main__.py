"""Scheduler エントリポイント: python -m realty_billing.scheduler で起動"""
import signal
import sys
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from realty_billing.core.config import settings
from realty_billing.core.logging import setup_logging, get_logger
from realty_billing.scheduler.subscription_expirer import expire_subscriptions

setup_logging(debug=settings.DEBUG, service="scheduler")
logger = get_logger("scheduler")

scheduler = BlockingScheduler(timezone=settings.SCHEDULER_TIMEZONE)


def signal_handler(sig, frame):
    logger.info("Scheduler停止シグナル受信")
    scheduler.shutdown(wait=False)
    sys.exit(0)


signal.signal(signal.SIGTERM, signal_handler)
signal.signal(signal.SIGINT, signal_handler)


def main():
    logger.info(f"Scheduler起動: 期限切れチェック間隔={settings.SWEEP_INTERVAL_MINUTES}分")

    # N分ごと: 期限切れ購読の expire
    scheduler.add_job(
        expire_subscriptions,
        CronTrigger(minute=f"*/{settings.SWEEP_INTERVAL_MINUTES}", timezone=settings.SCHEDULER_TIMEZONE),
        id="subscription_expirer",
        max_instances=1,
        coalesce=True,
    )

    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler終了")


if __name__ == "__main__":
    main()
