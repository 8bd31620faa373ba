"""One-shot auction sweep, for running from cron instead of the in-process scheduler.

    python run_sweep.py
"""
from motorbid.db import Base, engine
from motorbid.scheduler import sweep_auctions


if __name__ == "__main__":
    Base.metadata.create_all(bind=engine)
    print("Sweeping due auctions...")
    changed = sweep_auctions()
    print(f"Advanced {changed} auction(s).")
