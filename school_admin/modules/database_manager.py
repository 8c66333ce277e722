"""
Database Manager Module - School Administration System

This module handles all database operations for the administration system.
It provides the interface for managing SQLite database connections,
schema creation, default data, updates, and queries. Every manager in the
system runs its parameterized SQL through this class.

Features:
- SQLite connection management (thread-local connections)
- Idempotent schema creation
- Default administrator seeding
- Query helpers returning plain dicts
- Transaction support
- Public ID uniqueness lookups
- Persistent error log
"""

import sqlite3
import logging
import threading
import os
from contextlib import contextmanager
from werkzeug.security import generate_password_hash

# Tables that carry a public_id column
PUBLIC_ID_TABLES = ('users', 'courses', 'groups', 'students')


class DatabaseManager:
    """
    Database management class for the school administration system.
    Handles connection management, schema creation and data manipulation
    with proper error handling and transaction support.
    """

    def __init__(self, db_path, default_admin=None):
        """
        Initialize the database manager with the specified database path.

        Args:
            db_path (str): Path to the SQLite database file
            default_admin (dict): Optional name/email/password of the admin
                seeded into an empty database
        """
        self.db_path = str(db_path)
        self.default_admin = default_admin
        self.logger = logging.getLogger(__name__)
        self._local = threading.local()

        # Ensure database directory exists
        directory = os.path.dirname(self.db_path)
        if self.db_path != ':memory:' and directory:
            os.makedirs(directory, exist_ok=True)

        # Initialize database schema if it doesn't exist
        self.initialize_database()

    @contextmanager
    def get_connection(self):
        """
        Context manager for database connections with automatic rollback.
        Provides thread-local connections for thread safety.

        Yields:
            sqlite3.Connection: Database connection object
        """
        if not hasattr(self._local, 'connection'):
            self._local.connection = sqlite3.connect(
                self.db_path,
                check_same_thread=False,
                timeout=30.0
            )
            self._local.connection.row_factory = sqlite3.Row
            # Enable foreign key constraints
            self._local.connection.execute("PRAGMA foreign_keys = ON")

        try:
            yield self._local.connection
        except Exception as e:
            self._local.connection.rollback()
            self.logger.error(f"Database operation failed: {str(e)}")
            raise

    def initialize_database(self):
        """
        Create all tables and default data for the administration system.
        This method is idempotent and can be called multiple times safely.
        """
        try:
            with self.get_connection() as conn:
                cursor = conn.cursor()

                # Administrators and teachers
                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS users (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        public_id VARCHAR(20) UNIQUE,
                        name VARCHAR(255) NOT NULL,
                        email VARCHAR(255) UNIQUE NOT NULL,
                        password_hash VARCHAR(255) NOT NULL,
                        role VARCHAR(20) NOT NULL DEFAULT 'admin'
                            CHECK (role IN ('admin', 'teacher')),
                        phone VARCHAR(50),
                        telegram_id VARCHAR(100),
                        photo_url TEXT,
                        notes TEXT,
                        is_active BOOLEAN DEFAULT 1,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS courses (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        public_id VARCHAR(20) UNIQUE,
                        title VARCHAR(255) NOT NULL,
                        description TEXT,
                        age_min INTEGER DEFAULT 6,
                        duration_months INTEGER DEFAULT 1,
                        program TEXT,
                        flyer_path TEXT,
                        is_active BOOLEAN DEFAULT 1,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS groups (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        public_id VARCHAR(20) UNIQUE,
                        course_id INTEGER NOT NULL,
                        title VARCHAR(255) NOT NULL,
                        teacher_id INTEGER,
                        weekly_day INTEGER NOT NULL CHECK (weekly_day BETWEEN 1 AND 7),
                        start_time VARCHAR(5) NOT NULL,
                        duration_minutes INTEGER DEFAULT 90,
                        timezone VARCHAR(64) DEFAULT 'Europe/Uzhgorod',
                        start_date DATE,
                        end_date DATE,
                        capacity INTEGER,
                        monthly_price INTEGER DEFAULT 0,
                        status VARCHAR(20) DEFAULT 'active'
                            CHECK (status IN ('active', 'graduate', 'inactive')),
                        note TEXT,
                        photos_folder_url TEXT,
                        is_active BOOLEAN DEFAULT 1,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        FOREIGN KEY (course_id) REFERENCES courses(id) ON DELETE RESTRICT,
                        FOREIGN KEY (teacher_id) REFERENCES users(id) ON DELETE SET NULL
                    )
                """)

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS students (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        public_id VARCHAR(20) UNIQUE,
                        full_name VARCHAR(255) NOT NULL,
                        phone VARCHAR(50),
                        email VARCHAR(255),
                        parent_name VARCHAR(255),
                        parent_phone VARCHAR(50),
                        notes TEXT,
                        birth_date DATE,
                        photo TEXT,
                        school VARCHAR(255),
                        discount INTEGER DEFAULT 0,
                        parent_relation VARCHAR(50),
                        parent2_name VARCHAR(255),
                        parent2_relation VARCHAR(50),
                        interested_courses TEXT,
                        source VARCHAR(100),
                        is_active BOOLEAN DEFAULT 1,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS student_groups (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        student_id INTEGER NOT NULL,
                        group_id INTEGER NOT NULL,
                        join_date DATE DEFAULT CURRENT_DATE,
                        leave_date DATE,
                        is_active BOOLEAN DEFAULT 1,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        UNIQUE (student_id, group_id, join_date),
                        FOREIGN KEY (student_id) REFERENCES students(id) ON DELETE CASCADE,
                        FOREIGN KEY (group_id) REFERENCES groups(id) ON DELETE CASCADE
                    )
                """)

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS lessons (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        group_id INTEGER NOT NULL,
                        lesson_date DATE NOT NULL,
                        start_datetime TIMESTAMP NOT NULL,
                        end_datetime TIMESTAMP NOT NULL,
                        topic TEXT,
                        status VARCHAR(20) DEFAULT 'scheduled'
                            CHECK (status IN ('scheduled', 'done', 'canceled')),
                        created_by INTEGER,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        FOREIGN KEY (group_id) REFERENCES groups(id) ON DELETE CASCADE,
                        FOREIGN KEY (created_by) REFERENCES users(id) ON DELETE SET NULL
                    )
                """)

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS attendance (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        lesson_id INTEGER NOT NULL,
                        student_id INTEGER NOT NULL,
                        status VARCHAR(20) NOT NULL
                            CHECK (status IN ('present', 'absent', 'makeup_planned', 'makeup_done')),
                        comment TEXT,
                        makeup_lesson_id INTEGER,
                        updated_by INTEGER,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        UNIQUE (lesson_id, student_id),
                        FOREIGN KEY (lesson_id) REFERENCES lessons(id) ON DELETE CASCADE,
                        FOREIGN KEY (student_id) REFERENCES students(id) ON DELETE CASCADE,
                        FOREIGN KEY (makeup_lesson_id) REFERENCES lessons(id) ON DELETE SET NULL,
                        FOREIGN KEY (updated_by) REFERENCES users(id) ON DELETE SET NULL
                    )
                """)

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS payments (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        student_id INTEGER NOT NULL,
                        group_id INTEGER NOT NULL,
                        month DATE NOT NULL,
                        amount INTEGER NOT NULL,
                        method VARCHAR(20) NOT NULL CHECK (method IN ('cash', 'account')),
                        paid_at TIMESTAMP NOT NULL,
                        note TEXT,
                        created_by INTEGER,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        UNIQUE (student_id, group_id, month, method, paid_at),
                        FOREIGN KEY (student_id) REFERENCES students(id) ON DELETE CASCADE,
                        FOREIGN KEY (group_id) REFERENCES groups(id) ON DELETE CASCADE,
                        FOREIGN KEY (created_by) REFERENCES users(id) ON DELETE SET NULL
                    )
                """)

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS pricing (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        group_id INTEGER NOT NULL,
                        monthly_price INTEGER NOT NULL,
                        currency VARCHAR(10) DEFAULT 'UAH',
                        effective_from DATE NOT NULL,
                        effective_to DATE,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        FOREIGN KEY (group_id) REFERENCES groups(id) ON DELETE CASCADE
                    )
                """)

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS sessions (
                        id TEXT PRIMARY KEY,
                        user_id INTEGER NOT NULL,
                        expires_at TIMESTAMP NOT NULL,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
                    )
                """)

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS user_settings (
                        user_id INTEGER PRIMARY KEY,
                        phone VARCHAR(50),
                        language VARCHAR(10) DEFAULT 'uk',
                        timezone VARCHAR(64) DEFAULT 'Europe/Kyiv',
                        date_format VARCHAR(20) DEFAULT 'DD.MM.YYYY',
                        currency VARCHAR(10) DEFAULT 'UAH',
                        email_notifications BOOLEAN DEFAULT 1,
                        push_notifications BOOLEAN DEFAULT 1,
                        lesson_reminders BOOLEAN DEFAULT 1,
                        payment_alerts BOOLEAN DEFAULT 1,
                        weekly_report BOOLEAN DEFAULT 0,
                        FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
                    )
                """)

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS error_logs (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        error_message TEXT NOT NULL,
                        error_stack TEXT,
                        user_id INTEGER,
                        request_path TEXT,
                        request_method VARCHAR(10),
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS group_history (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        group_id INTEGER NOT NULL,
                        action_type VARCHAR(50) NOT NULL,
                        action_description TEXT NOT NULL,
                        old_value TEXT,
                        new_value TEXT,
                        user_id INTEGER,
                        user_name VARCHAR(255),
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        FOREIGN KEY (group_id) REFERENCES groups(id) ON DELETE CASCADE
                    )
                """)

                # Create indexes for better performance
                cursor.execute("CREATE INDEX IF NOT EXISTS idx_groups_course ON groups(course_id)")
                cursor.execute("CREATE INDEX IF NOT EXISTS idx_groups_teacher ON groups(teacher_id)")
                cursor.execute("CREATE INDEX IF NOT EXISTS idx_student_groups_group ON student_groups(group_id)")
                cursor.execute("CREATE INDEX IF NOT EXISTS idx_student_groups_student ON student_groups(student_id)")
                cursor.execute("CREATE INDEX IF NOT EXISTS idx_lessons_group_date ON lessons(group_id, lesson_date)")
                cursor.execute("CREATE INDEX IF NOT EXISTS idx_attendance_lesson ON attendance(lesson_id)")
                cursor.execute("CREATE INDEX IF NOT EXISTS idx_payments_group_month ON payments(group_id, month)")
                cursor.execute("CREATE INDEX IF NOT EXISTS idx_sessions_user ON sessions(user_id)")
                cursor.execute("CREATE INDEX IF NOT EXISTS idx_group_history_group ON group_history(group_id)")

                conn.commit()

                # Insert default data if tables are empty
                self._insert_default_data(cursor)
                conn.commit()

                self.logger.info("Database initialized successfully")

        except Exception as e:
            self.logger.error(f"Failed to initialize database: {str(e)}")
            raise

    def _insert_default_data(self, cursor):
        """
        Seed the default administrator when no admin account exists.

        Args:
            cursor: Database cursor object
        """
        if not self.default_admin:
            return

        cursor.execute("SELECT COUNT(*) FROM users WHERE role = 'admin'")
        if cursor.fetchone()[0] == 0:
            cursor.execute("""
                INSERT INTO users (name, email, password_hash, role)
                VALUES (?, ?, ?, 'admin')
            """, (
                self.default_admin['name'],
                self.default_admin['email'].strip().lower(),
                generate_password_hash(self.default_admin['password'])
            ))
            self.logger.info(f"Default administrator created: {self.default_admin['email']}")

    def execute_query(self, query, params=None, fetch_all=True):
        """
        Execute a SELECT query and return results.

        Args:
            query (str): SQL query string
            params (tuple): Query parameters
            fetch_all (bool): Whether to fetch all results or just one

        Returns:
            list or dict: Query results
        """
        try:
            with self.get_connection() as conn:
                cursor = conn.cursor()

                if params:
                    cursor.execute(query, params)
                else:
                    cursor.execute(query)

                if fetch_all:
                    return [dict(row) for row in cursor.fetchall()]

                result = cursor.fetchone()
                return dict(result) if result else None

        except Exception as e:
            self.logger.error(f"Query execution failed: {str(e)}")
            raise

    def execute_scalar(self, query, params=None, default=0):
        """Execute a query returning a single value (COUNT, SUM, ...)."""
        with self.get_connection() as conn:
            row = conn.execute(query, params or ()).fetchone()
            if row is None or row[0] is None:
                return default
            return row[0]

    def execute_update(self, query, params=None):
        """
        Execute an INSERT, UPDATE, or DELETE query.

        Args:
            query (str): SQL query string
            params (tuple): Query parameters

        Returns:
            int: Number of affected rows or last inserted row ID
        """
        try:
            with self.get_connection() as conn:
                cursor = conn.cursor()

                if params:
                    cursor.execute(query, params)
                else:
                    cursor.execute(query)

                conn.commit()

                # Return last inserted row ID for INSERT statements
                if query.strip().upper().startswith('INSERT'):
                    return cursor.lastrowid
                return cursor.rowcount

        except Exception as e:
            self.logger.error(f"Update execution failed: {str(e)}")
            raise

    @contextmanager
    def transaction(self):
        """
        Context manager for database transactions with automatic rollback on error.

        Yields:
            sqlite3.Connection: Database connection within transaction
        """
        with self.get_connection() as conn:
            try:
                yield conn
                conn.commit()
            except Exception as e:
                conn.rollback()
                self.logger.error(f"Transaction rolled back: {str(e)}")
                raise

    def public_id_exists(self, table, public_id):
        """
        Check whether a public ID is already taken in a table.

        Args:
            table (str): One of the tables carrying a public_id column
            public_id (str): Candidate identifier

        Returns:
            bool: True if the identifier is in use
        """
        if table not in PUBLIC_ID_TABLES:
            raise ValueError(f"Table has no public_id column: {table}")

        row = self.execute_query(
            f"SELECT 1 AS found FROM {table} WHERE public_id = ?",
            (public_id,),
            fetch_all=False
        )
        return row is not None

    def log_error(self, message, stack=None, user_id=None, request_path=None,
                  request_method=None):
        """
        Persist an unhandled error for later inspection.

        Failures to write the log are only reported to the logger so the
        original error stays the one surfaced to the caller.
        """
        try:
            self.execute_update("""
                INSERT INTO error_logs (error_message, error_stack, user_id,
                                        request_path, request_method)
                VALUES (?, ?, ?, ?, ?)
            """, (message, stack, user_id, request_path, request_method))
        except sqlite3.Error as e:
            self.logger.error(f"Failed to write error log: {str(e)}")

    def close_all_connections(self):
        """Close the connection held by the current thread."""
        if hasattr(self._local, 'connection'):
            self._local.connection.close()
            del self._local.connection
