import os
import sys

import psycopg2
from psycopg2 import sql

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from valuation_desk.config.settings import Config  # noqa: E402
from valuation_desk.models.entities import COLLECTION_KEYS, CURRENT_USER_KEY  # noqa: E402
from valuation_desk.services.storage import version_key  # noqa: E402


class PostgreSQLSetup:
    def __init__(
        self,
        host="localhost",
        port=5432,
        database="valuation_desk",
        user="postgres",
        password="postgres",
        table="kv_store",
    ):
        self.connection_params = {"host": host, "port": port, "database": database, "user": user, "password": password}
        self.table = table

    @classmethod
    def from_config(cls, config_class=Config):
        return cls(table=config_class.DB_TABLE, **config_class.get_database_config())

    def create_database_if_not_exists(self):
        """Create the database if it doesn't exist"""
        # Connect to default postgres database first
        temp_params = self.connection_params.copy()
        temp_params["database"] = "postgres"

        try:
            conn = psycopg2.connect(**temp_params)
            conn.autocommit = True
            cursor = conn.cursor()

            # Check if database exists
            cursor.execute("SELECT 1 FROM pg_database WHERE datname = %s", (self.connection_params["database"],))
            exists = cursor.fetchone()

            if not exists:
                cursor.execute(sql.SQL("CREATE DATABASE {}").format(sql.Identifier(self.connection_params["database"])))
                print(f"Database '{self.connection_params['database']}' created successfully")
            else:
                print(f"Database '{self.connection_params['database']}' already exists")

            cursor.close()
            conn.close()

        except psycopg2.Error as e:
            print(f"Error creating database: {e}")
            raise

    def drop_table(self):
        """Drop the key-value table to start from scratch"""
        try:
            conn = psycopg2.connect(**self.connection_params)
            cursor = conn.cursor()
            cursor.execute(sql.SQL("DROP TABLE IF EXISTS {} CASCADE").format(sql.Identifier(self.table)))
            conn.commit()
            print(f"Table '{self.table}' dropped")
            cursor.close()
            conn.close()
        except psycopg2.Error as e:
            print(f"Note: table may not have existed: {e}")

    def create_table(self):
        """Create the key-value table the postgres storage backend writes to"""
        create_table_sql = sql.SQL(
            """
            CREATE TABLE IF NOT EXISTS {table} (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
            );
            CREATE INDEX IF NOT EXISTS {index} ON {table} (updated_at);
            """
        ).format(table=sql.Identifier(self.table), index=sql.Identifier(f"idx_{self.table}_updated_at"))

        try:
            conn = psycopg2.connect(**self.connection_params)
            cursor = conn.cursor()
            cursor.execute(create_table_sql)
            conn.commit()
            print(f"Table '{self.table}' is ready")
            cursor.close()
            conn.close()
        except psycopg2.Error as e:
            print(f"Error creating table: {e}")
            raise

    def setup_database(self, drop_table=False):
        """Complete database setup"""
        self.create_database_if_not_exists()

        if drop_table:
            print("Dropping existing table...")
            self.drop_table()

        self.create_table()
        print("PostgreSQL database setup completed successfully!")

    def clear_all_data(self):
        """Remove every stored collection and its version counter"""
        keys = list(COLLECTION_KEYS) + [version_key(key) for key in COLLECTION_KEYS] + [CURRENT_USER_KEY]
        try:
            conn = psycopg2.connect(**self.connection_params)
            cursor = conn.cursor()
            cursor.execute(
                sql.SQL("DELETE FROM {} WHERE key = ANY(%s)").format(sql.Identifier(self.table)),
                (keys,),
            )
            conn.commit()
            print(f"Cleared {cursor.rowcount} stored keys")
            cursor.close()
            conn.close()
        except psycopg2.Error as e:
            print(f"Error clearing data: {e}")
            raise


if __name__ == "__main__":
    db_setup = PostgreSQLSetup.from_config()

    # Check for command line arguments
    if len(sys.argv) > 1:
        if sys.argv[1] == "--reset":
            print("Resetting database...")
            db_setup.setup_database(drop_table=True)
        elif sys.argv[1] == "--clear-data":
            print("Clearing all data...")
            db_setup.clear_all_data()
        else:
            print("Usage: python database_setup.py [--reset|--clear-data]")
    else:
        db_setup.setup_database()
