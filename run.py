"""
Combined runner for the Flask server and the expiry sweeper.
The sweeper fails overdue pending transactions in the background.
"""
import asyncio
import threading
import signal
import sys
from typing import Optional

from config import config
from utils.logger import get_logger

logger = get_logger("runner")


class ServiceRunner:
    """Runs the Flask server and the expiry sweeper."""

    def __init__(self, sweep_interval: Optional[float] = None):
        self.flask_thread: Optional[threading.Thread] = None
        self.sweeper_thread: Optional[threading.Thread] = None
        self.sweep_interval = sweep_interval or config.EXPIRY_SWEEP_INTERVAL
        self._shutdown = threading.Event()

    def run_flask(self):
        """Run Flask in a thread."""
        from app import create_app
        create_app().run(
            host="0.0.0.0",
            port=5000,
            debug=False,
            use_reloader=False
        )

    def sweep_once(self) -> int:
        from db import db
        from services.expiry_service import sweep_expired

        async def _sweep():
            await db.initialize()
            return await sweep_expired()

        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            return loop.run_until_complete(_sweep()).expired_count
        finally:
            loop.close()

    def run_sweeper(self):
        """Sweep every `sweep_interval` seconds until shutdown."""
        while not self._shutdown.is_set():
            try:
                self.sweep_once()
            except Exception as e:
                logger.error(f"Expiry sweep failed: {e}", exc_info=True)
            self._shutdown.wait(timeout=self.sweep_interval)

    def start(self, flask: bool = True, sweeper: bool = True):
        """
        Start services.

        Args:
            flask: Whether to start Flask server
            sweeper: Whether to start the expiry sweeper
        """
        # Setup signal handlers
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        config.ensure_data_dir()

        if flask:
            logger.info("Starting Flask server...")
            self.flask_thread = threading.Thread(target=self.run_flask, daemon=True)
            self.flask_thread.start()

        if sweeper:
            logger.info(f"Starting expiry sweeper (every {self.sweep_interval}s)...")
            self.sweeper_thread = threading.Thread(target=self.run_sweeper, daemon=True)
            self.sweeper_thread.start()

        logger.info("All services started. Press Ctrl+C to stop.")

        # Wait for shutdown signal
        try:
            while not self._shutdown.is_set():
                self._shutdown.wait(timeout=1.0)
        except (KeyboardInterrupt, SystemExit):
            self._shutdown.set()

        logger.info("Shutting down...")
        sys.exit(0)

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals."""
        self._shutdown.set()


def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Run Vibra Kas services")
    parser.add_argument("--flask-only", action="store_true", help="Run only Flask server")
    parser.add_argument("--sweeper-only", action="store_true", help="Run only the expiry sweeper")
    args = parser.parse_args()

    runner = ServiceRunner()

    if args.flask_only:
        runner.start(flask=True, sweeper=False)
    elif args.sweeper_only:
        runner.start(flask=False, sweeper=True)
    else:
        runner.start(flask=True, sweeper=True)


if __name__ == "__main__":
    main()
