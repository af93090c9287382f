#!/usr/bin/env python3
"""
Dummy Data Generator for the Valuation Desk

This script seeds realistic demo users, bank accounts, valuation files and
invoices into whichever storage backend the configuration selects. Records
are created through the domain services, so numbering, GST totals and audit
notes come out exactly as they would from the API.

Usage:
    python generate_dummy_data.py [--clear] [--count N]

Options:
    --clear     Clear existing data before generating new data
    --count N   Number of valuation files to generate (default: 50)
"""

import argparse
import logging
import os
import random
import sys
from datetime import date, timedelta
from decimal import Decimal

from faker import Faker

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from valuation_desk import create_app, get_services  # noqa: E402
from valuation_desk.config.settings import config  # noqa: E402
from valuation_desk.models.entities import (  # noqa: E402
    COLLECTION_KEYS,
    DEFAULT_ACCOUNT_HOLDER,
    FILE_STATUSES,
    ROLE_ADMIN,
    ROLE_COMPUTER_OPERATOR,
    ROLE_INSPECTOR,
)
from valuation_desk.utils.helpers import format_currency  # noqa: E402

# Setup logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

# Initialize Faker
fake = Faker("en_IN")

DEMO_PASSWORD = "password123"


class DummyDataGenerator:
    def __init__(self, config_name="development"):
        """Build an app for the selected configuration."""
        self.config_class = config[config_name]
        self.app = create_app(self.config_class)

        # Data generation configuration
        self.banks = [
            ("STATE BANK OF INDIA", ["Park Street", "Salt Lake", "Howrah Main"]),
            ("PUNJAB NATIONAL BANK", ["Esplanade", "Behala"]),
            ("HDFC BANK", ["Camac Street", "New Town"]),
            ("BANK OF BARODA", ["Gariahat", "Dum Dum"]),
            ("CANARA BANK", ["Ballygunge"]),
        ]
        self.property_descriptions = [
            "Residential flat, {n} BHK, {floor} floor",
            "Independent house on {n} katha plot",
            "Commercial shop, ground floor, {n}00 sq ft",
            "Vacant land measuring {n} decimal",
            "Office space, {floor} floor, {n}50 sq ft",
        ]
        self.floors = ["ground", "first", "second", "third", "fourth"]

    def clear_existing_data(self, services):
        """Empty every collection and re-seed the default admin."""
        logger.info("Clearing existing data...")
        for key in COLLECTION_KEYS:
            services.store.replace_all(key, [])
            logger.info(f"Cleared collection: {key}")
        services.store.clear_current_user()
        services.users.ensure_default_admin(self.config_class)

    def generate_users(self, services, admin):
        """Create a few operators and inspectors."""
        users = []
        for role, count in ((ROLE_COMPUTER_OPERATOR, 2), (ROLE_INSPECTOR, 3)):
            for _ in range(count):
                first_name = fake.first_name().replace(" ", "")
                user = services.users.create_user(
                    {
                        "username": f"{first_name.lower()}{len(users) + 1}",
                        "password": DEMO_PASSWORD,
                        "fullName": f"{first_name} {fake.last_name()}",
                        "role": role,
                        "email": fake.email(),
                    },
                    admin,
                )
                users.append(user)
        logger.info(f"Successfully generated {len(users)} users")
        return users

    def generate_banks(self, services, admin):
        """Create the firm's receiving bank accounts."""
        accounts = []
        for index, (bank_name, branches) in enumerate(self.banks[:3]):
            accounts.append(
                services.banks.add_bank(
                    {
                        "bankName": bank_name,
                        "branchName": branches[0],
                        "accountNumber": str(fake.random_number(digits=14, fix_len=True)),
                        "ifscCode": f"{bank_name[:4].replace(' ', 'X')}0{random.randint(100000, 999999)}",
                        "accountType": "Current",
                        "accountHolderName": DEFAULT_ACCOUNT_HOLDER,
                        "isDefault": index == 0,
                    },
                    admin,
                )
            )
        logger.info(f"Successfully generated {len(accounts)} bank accounts")
        return accounts

    def generate_files(self, services, count, staff):
        """Create valuation files spread across the staff."""
        files = []
        inspectors = [user for user in staff if user.role == ROLE_INSPECTOR]
        for _ in range(count):
            bank_name, branches = random.choice(self.banks)
            maker = random.choice(staff)
            description = random.choice(self.property_descriptions).format(
                n=random.randint(1, 9), floor=random.choice(self.floors)
            )
            record = services.files.create_file(
                {
                    "fileDate": (date.today() - timedelta(days=random.randint(0, 120))).isoformat(),
                    "clientFirstName": fake.first_name(),
                    "clientLastName": fake.last_name(),
                    "clientAddress": fake.address().replace("\n", ", "),
                    "clientEmail": fake.email(),
                    "bankName": bank_name,
                    "branchName": random.choice(branches),
                    "description": description,
                    "propertyValue": str(random.randint(5, 250) * 100000),
                    "reportMaker": maker.full_name,
                    "inspectedBy": random.choice(inspectors).full_name if inspectors else maker.full_name,
                },
                maker,
            )
            status = random.choice(FILE_STATUSES)
            if status != record.status:
                record = services.files.change_status(record.id, status, maker)
            files.append(record)
        logger.info(f"Successfully generated {len(files)} valuation files")
        return files

    def generate_invoices(self, services, files, staff):
        """Raise invoices for completed files."""
        invoices = []
        by_name = {user.full_name: user for user in staff}
        for record in files:
            if record.status != "completed":
                continue
            maker = by_name.get(record.report_maker, staff[0])
            invoice_date = date.today() - timedelta(days=random.randint(0, 90))
            invoice = services.invoices.create_invoice(
                {
                    "invoiceDate": invoice_date.isoformat(),
                    "dueDate": (invoice_date + timedelta(days=30)).isoformat(),
                    "clientFirstName": record.client_first_name,
                    "clientLastName": record.client_last_name,
                    "clientAddress": record.client_address,
                    "bankName": record.bank_name,
                    "branchName": record.branch_name,
                    "reportMaker": record.report_maker or maker.full_name,
                    "inspectedBy": record.inspected_by or maker.full_name,
                    "description": f"Valuation of {record.description.lower()}",
                    "professionalFees": str(random.choice([3500, 5000, 7500, 10000, 15000])),
                    "advance": str(random.choice([0, 0, 1000, 2000])),
                    "gstApplicable": random.random() < 0.6,
                    "fileId": record.id,
                },
                maker,
            )
            roll = random.random()
            if roll < 0.4:
                invoice = services.invoices.change_status(invoice.id, "paid", maker)
            elif roll < 0.55:
                invoice = services.invoices.record_partial_payment(
                    invoice.id, (invoice.total / 2).quantize(Decimal("1")), maker
                )
            invoices.append(invoice)
        logger.info(f"Successfully generated {len(invoices)} invoices")
        return invoices

    def generate_statistics(self, users, banks, files, invoices):
        """Display statistics about the generated data."""
        total_property_value = sum((record.property_value or Decimal("0") for record in files), Decimal("0"))
        total_billed = sum((invoice.total for invoice in invoices), Decimal("0"))
        paid = len([invoice for invoice in invoices if invoice.status == "paid"])

        print("\n" + "=" * 60)
        print("DUMMY DATA GENERATION COMPLETE!")
        print("=" * 60)
        print("STATISTICS:")
        print(f"  - Users:            {len(users):,}")
        print(f"  - Bank accounts:    {len(banks):,}")
        print(f"  - Valuation files:  {len(files):,}")
        print(f"  - Invoices:         {len(invoices):,} ({paid} paid)")
        print("\nFINANCIAL:")
        print(f"  - Property value:   {format_currency(total_property_value)}")
        print(f"  - Total billed:     {format_currency(total_billed)}")
        print("\nFILE STATUSES:")
        status_counts = {}
        for record in files:
            status_counts[record.status] = status_counts.get(record.status, 0) + 1
        for status, count in sorted(status_counts.items()):
            print(f"  - {status}: {count}")
        print("=" * 60)

    def run(self, file_count=50, clear_existing=False):
        """Run the complete dummy data generation process."""
        with self.app.app_context():
            services = get_services()
            if clear_existing:
                self.clear_existing_data(services)

            admin = services.users.find_by_username(self.config_class.DEFAULT_ADMIN_USERNAME)
            if admin is None or admin.role != ROLE_ADMIN:
                logger.error("No admin account found; run with --clear to re-seed the default admin")
                return False

            logger.info("Starting dummy data generation...")
            users = self.generate_users(services, admin)
            banks = self.generate_banks(services, admin)
            files = self.generate_files(services, file_count, users)
            invoices = self.generate_invoices(services, files, users)

            self.generate_statistics(users, banks, files, invoices)
            logger.info("Dummy data generation completed successfully!")
            return True


def main():
    """Main function to handle command line arguments and run the generator."""
    parser = argparse.ArgumentParser(description="Generate dummy data for the Valuation Desk")
    parser.add_argument("--clear", action="store_true", help="Clear existing data before generating new data")
    parser.add_argument("--count", type=int, default=50, help="Number of valuation files to generate (default: 50)")
    parser.add_argument(
        "--env",
        default=os.getenv("FLASK_ENV", "development"),
        choices=sorted(config.keys()),
        help="Configuration to load (default: FLASK_ENV or development)",
    )

    args = parser.parse_args()

    generator = DummyDataGenerator(config_name=args.env)
    success = generator.run(file_count=args.count, clear_existing=args.clear)

    if success:
        print("\n[SUCCESS] Successfully generated dummy data!")
        print(f"[INFO] Sign in with any generated username and password '{DEMO_PASSWORD}'")
        sys.exit(0)
    else:
        print("\n[ERROR] Failed to generate dummy data. Check the logs above.")
        sys.exit(1)


if __name__ == "__main__":
    main()
