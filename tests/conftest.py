"""
Homie-Do - Test Configuration and Fixtures
"""
import os
from typing import Any, Dict, Generator, List, Tuple

import pytest
from faker import Faker

# Set testing environment before the app reads its settings
os.environ['ENVIRONMENT'] = 'test'
os.environ['DATABASE_URL'] = ''
os.environ['JWT_SECRET'] = 'test-jwt-secret-for-testing-only'
os.environ['BCRYPT_ROUNDS'] = '4'
os.environ['CLIENT_URL'] = 'http://localhost:5173'
os.environ['EMAIL_USER'] = ''
os.environ['EMAIL_PASSWORD'] = ''
os.environ['CHATBOT_API_KEY'] = ''

import mongomock
from fastapi.testclient import TestClient

from auth_service import create_user, get_google_verifier
from chatbot_service import get_chatbot_service
from database import get_db
from email_service import get_email_service
from exceptions import AuthenticationError, EmailDeliveryError
from main import app
from security import create_access_token

fake = Faker()

TEST_PASSWORD = 'testpassword123'


class FakeEmailService:
    """Records outgoing mail instead of talking to SMTP"""

    def __init__(self):
        self.is_configured = True
        self.fail = False
        self.reset_emails: List[Tuple[str, str]] = []
        self.welcome_emails: List[Tuple[str, str]] = []

    async def send_password_reset_email(self, to_email: str, reset_url: str) -> None:
        if self.fail:
            raise EmailDeliveryError('Could not send email')
        self.reset_emails.append((to_email, reset_url))

    async def send_welcome_email(self, to_email: str, name: str) -> None:
        self.welcome_emails.append((to_email, name))


class FakeGoogleVerifier:
    """Maps known ID tokens to Google profiles"""

    def __init__(self):
        self.tokens: Dict[str, Dict[str, Any]] = {}

    def verify(self, token: str) -> Dict[str, Any]:
        if token not in self.tokens:
            raise AuthenticationError('Invalid Google token', code='INVALID_GOOGLE_TOKEN')
        return self.tokens[token]


class FakeChatbot:
    def __init__(self):
        self.logged = []
        self.asked = []

    def log_interaction(self, user_id, question, file_url):
        self.logged.append((user_id, question, file_url))

    def ask(self, question, file_url=None, user_id=None):
        self.asked.append((question, file_url, user_id))
        return {'answer': 'Chapter 3 covers recursion.', 'modelUsed': 'fake-model', 'processingTime': '0.01s'}


@pytest.fixture
def mongo_db():
    """Fresh in-memory database for each test"""
    return mongomock.MongoClient()['homie_do_test']


@pytest.fixture
def email_service() -> FakeEmailService:
    return FakeEmailService()


@pytest.fixture
def google_verifier() -> FakeGoogleVerifier:
    return FakeGoogleVerifier()


@pytest.fixture
def chatbot() -> FakeChatbot:
    return FakeChatbot()


@pytest.fixture
def client(mongo_db, email_service, google_verifier, chatbot) -> Generator[TestClient, None, None]:
    """Test client with database and external services overridden"""
    app.dependency_overrides[get_db] = lambda: mongo_db
    app.dependency_overrides[get_email_service] = lambda: email_service
    app.dependency_overrides[get_google_verifier] = lambda: google_verifier
    app.dependency_overrides[get_chatbot_service] = lambda: chatbot

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def test_user_data() -> Dict[str, str]:
    return {
        'name': fake.name(),
        'email': fake.email(),
        'password': TEST_PASSWORD,
    }


def make_user(mongo_db) -> Dict[str, Any]:
    return create_user(mongo_db, fake.name(), fake.email(), TEST_PASSWORD)


def headers_for(user: Dict[str, Any]) -> Dict[str, str]:
    token = create_access_token(str(user['_id']), user['email'])
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def test_user(mongo_db) -> Dict[str, Any]:
    """A stored user document"""
    return make_user(mongo_db)


@pytest.fixture
def other_user(mongo_db) -> Dict[str, Any]:
    return make_user(mongo_db)


@pytest.fixture
def auth_headers(test_user) -> Dict[str, str]:
    """Authentication headers for test_user"""
    return headers_for(test_user)


@pytest.fixture
def other_headers(other_user) -> Dict[str, str]:
    return headers_for(other_user)


@pytest.fixture
def subject(client, auth_headers) -> Dict[str, Any]:
    """A subject owned by test_user, created through the API"""
    response = client.post('/api/subjects', json={'name': 'Algorithms', 'color': '#3366FF'}, headers=auth_headers)
    assert response.status_code == 201
    return response.json()
