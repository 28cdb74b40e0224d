"""
Tests for database models and relationships.
"""

from datetime import datetime

import pytest
from sqlalchemy.exc import IntegrityError

from inbox_agent.database import DatabaseManager
from inbox_agent.database.models import Account, AIUsage, Category, Email, UnsubscribeAttempt


class TestModels:

    def setup_method(self):
        self.db_manager = DatabaseManager("sqlite:///:memory:")
        self.db_manager.initialize_database()
        self.session = self.db_manager.get_session()

        self.account = Account(email_address="me@example.com")
        self.session.add(self.account)
        self.session.commit()

    def teardown_method(self):
        self.session.close()

    def make_email(self, message_id='m1', **fields):
        email = Email(account_id=self.account.id, provider_message_id=message_id,
                      from_address='news@example.com', received_at=datetime(2024, 1, 1), **fields)
        self.session.add(email)
        self.session.commit()
        return email

    def test_account_defaults(self):
        assert self.account.provider == 'gmail'
        assert self.account.is_active is True
        assert self.account.last_sync is None
        assert self.account.created_at is not None

    def test_duplicate_account_rejected(self):
        self.session.add(Account(email_address="me@example.com"))

        with pytest.raises(IntegrityError):
            self.session.commit()

    def test_email_defaults_and_flags(self):
        email = self.make_email()

        assert email.subject == '(No Subject)'
        assert email.is_archived is False
        assert email.needs_summary() is True
        assert email.needs_category() is True
        assert email.account.email_address == 'me@example.com'

    def test_provider_message_id_is_unique(self):
        self.make_email('dup')

        with pytest.raises(IntegrityError):
            self.make_email('dup')

    def test_category_relationship(self):
        category = Category(name='Receipts')
        self.session.add(category)
        self.session.commit()
        email = self.make_email(category_id=category.id, ai_confidence=0.8, summary='An order receipt')

        assert category.color == '#6366f1'
        assert email.category.name == 'Receipts'
        assert category.emails == [email]
        assert email.needs_category() is False
        assert email.needs_summary() is False

    def test_deleting_category_uncategorizes_emails(self):
        category = Category(name='Receipts')
        self.session.add(category)
        self.session.commit()
        email = self.make_email(category_id=category.id)

        self.session.delete(category)
        self.session.commit()

        assert self.session.get(Email, email.id).category_id is None

    def test_deleting_account_removes_its_emails(self):
        self.make_email('a')
        self.make_email('b')

        self.session.delete(self.account)
        self.session.commit()

        assert self.session.query(Email).count() == 0

    def test_attempt_outlives_email(self):
        email = self.make_email()
        attempt = UnsubscribeAttempt(email_id=email.id, url='https://example.com/u',
                                     succeeded=True, status='unsubscribed')
        self.session.add(attempt)
        self.session.commit()

        assert email.unsubscribe_attempts == [attempt]

        self.session.delete(email)
        self.session.commit()

        remaining = self.session.query(UnsubscribeAttempt).one()
        assert remaining.email_id is None
        assert remaining.url == 'https://example.com/u'

    def test_usage_row(self):
        usage = AIUsage(operation='summarization', model='claude-haiku', prompt_tokens=100,
                        completion_tokens=20, total_tokens=120)
        self.session.add(usage)
        self.session.commit()

        assert usage.estimated_cost == 0.0
        assert 'summarization' in repr(usage)
