#!/usr/bin/env python3
"""
Development Environment Setup Script

This script sets up a complete development environment for the Valuation Desk:
1. Creates/resets the PostgreSQL key-value table (postgres backend only)
2. Generates dummy users, banks, valuation files and invoices

Usage:
    python setup_dev_environment.py [options]
"""

import argparse
import logging
import os
import subprocess
import sys

# Setup logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def run_script(script_name, args=None, env=None):
    """Run a sibling Python script with optional arguments."""
    script_dir = os.path.dirname(os.path.abspath(__file__))
    script_path = os.path.join(script_dir, script_name)

    cmd = [sys.executable, script_path]
    if args:
        cmd.extend(args)

    logger.info(f"Running: {' '.join(cmd)}")

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=True, env=env)
        logger.info(f"[SUCCESS] {script_name} completed successfully")
        if result.stdout:
            print(result.stdout)
        return True
    except subprocess.CalledProcessError as e:
        logger.error(f"[ERROR] {script_name} failed with exit code {e.returncode}")
        if e.stdout:
            print("STDOUT:", e.stdout)
        if e.stderr:
            print("STDERR:", e.stderr)
        return False


def main():
    parser = argparse.ArgumentParser(description="Setup development environment for the Valuation Desk")
    parser.add_argument("--file-count", type=int, default=50, help="Number of valuation files to generate (default: 50)")
    parser.add_argument(
        "--backend",
        choices=["json", "postgres"],
        default=os.getenv("STORAGE_BACKEND", "json"),
        help="Storage backend to prepare (default: STORAGE_BACKEND or json)",
    )
    parser.add_argument("--reset", action="store_true", help="Drop and recreate the PostgreSQL table")
    parser.add_argument("--skip-data", action="store_true", help="Skip dummy data generation")
    parser.add_argument("--env", default="development", help="Configuration to load (default: development)")

    args = parser.parse_args()

    env = dict(os.environ, STORAGE_BACKEND=args.backend, FLASK_ENV=args.env)

    print("VALUATION DESK - DEVELOPMENT ENVIRONMENT SETUP")
    print("=" * 65)

    success_count = 0
    total_steps = 2

    # Step 1: Storage setup
    if args.backend == "postgres":
        print("\n[STEP 1] Setting up PostgreSQL storage...")
        if run_script("database_setup.py", ["--reset"] if args.reset else None, env=env):
            success_count += 1
        else:
            logger.error("Database setup failed. Aborting.")
            sys.exit(1)
    else:
        print("\n[STEP 1] JSON file storage needs no setup")
        success_count += 1

    # Step 2: Generate dummy data
    if not args.skip_data:
        print("\n[STEP 2] Generating dummy data...")
        data_args = ["--clear", "--count", str(args.file_count), "--env", args.env]
        if run_script("generate_dummy_data.py", data_args, env=env):
            success_count += 1
        else:
            logger.error("Dummy data generation failed.")
    else:
        print("\n[STEP 2] Skipping dummy data generation (--skip-data)")
        success_count += 1

    print("\n" + "=" * 65)
    if success_count == total_steps:
        print("[SUCCESS] All setup steps completed successfully!")
        print("\nNEXT STEPS:")
        print("   1. Start the application: python run.py")
        print("   2. Sign in: POST http://localhost:5000/api/auth/login")
        print("   3. Fetch the dashboard: GET http://localhost:5000/")
    else:
        print(f"[WARNING] Setup completed with {total_steps - success_count} issue(s)")
        print("   Check the logs above for details")
    print("=" * 65)


if __name__ == "__main__":
    main()
