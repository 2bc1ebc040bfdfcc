"""
Chatbot service with a fake Gemini client and a patched downloader
"""
import os
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
import requests

from chatbot_service import ERROR_ANSWER, TRUNCATION_MARKER, ChatbotService, file_name_from_url, truncate

FILE_URL = 'https://files.example.com/course/notes.txt'


def fake_download(content: bytes = b'Recursion is a function calling itself.'):
    response = MagicMock()
    response.__enter__.return_value = response
    response.iter_content.return_value = [content]
    return response


def fake_client(*answers):
    client = MagicMock()
    client.files.upload.return_value = SimpleNamespace(uri='https://generativelanguage.googleapis.com/files/abc')
    client.models.generate_content_stream.side_effect = [
        [SimpleNamespace(text=chunk) for chunk in answer] for answer in answers
    ]
    return client


def prompt_text(client) -> str:
    contents = client.models.generate_content_stream.call_args.kwargs['contents']
    return contents[0].parts[0].text


@pytest.fixture
def downloads():
    with patch('chatbot_service.requests.get') as get:
        get.return_value = fake_download()
        yield get


class TestAsk:
    def test_answer_with_file(self, downloads):
        client = fake_client(['Recursion ', 'means self-reference.'])
        service = ChatbotService('key', 'gemini-test', client=client)

        result = service.ask('What is recursion?', FILE_URL, 'user-1')

        assert result['answer'] == 'Recursion means self-reference.'
        assert result['modelUsed'] == 'gemini-test'
        assert result['processingTime'].endswith('s')
        upload = client.files.upload.call_args.kwargs
        assert upload['config'].mime_type == 'text/plain'
        assert not os.path.exists(upload['file'])

    def test_text_fallback_when_upload_fails(self, downloads):
        client = fake_client(['From the text: it calls itself.'])
        client.files.upload.side_effect = RuntimeError('unsupported file')
        service = ChatbotService('key', 'gemini-test', client=client)

        result = service.ask('What is recursion?', FILE_URL, 'user-1')

        assert result['modelUsed'] == 'gemini-test (text-only fallback)'
        assert result['answer'] == 'From the text: it calls itself.'
        prompt = prompt_text(client)
        assert prompt.startswith('Question: What is recursion?\n\nContext from file (notes.txt):\n')
        assert 'Recursion is a function calling itself.' in prompt

    def test_fallback_context_is_truncated(self, downloads):
        downloads.return_value = fake_download(b'abcdefghij')
        client = fake_client(['ok'])
        client.files.upload.side_effect = RuntimeError('unsupported file')
        service = ChatbotService('key', 'gemini-test', client=client, max_context_chars=5)

        service.ask('Summarise', FILE_URL)

        assert prompt_text(client).endswith('abcde' + TRUNCATION_MARKER)

    def test_question_without_file(self):
        client = fake_client(['Hello!'])
        service = ChatbotService('key', 'gemini-test', client=client)

        result = service.ask('Hi there')

        assert result['answer'] == 'Hello!'
        assert prompt_text(client) == 'Hi there'
        client.files.upload.assert_not_called()

    def test_download_failure_returns_apology(self, downloads):
        downloads.side_effect = requests.ConnectionError('host unreachable')
        service = ChatbotService('key', 'gemini-test', client=fake_client())

        result = service.ask('What is recursion?', FILE_URL)

        assert result == {
            'answer': ERROR_ANSWER,
            'modelUsed': 'error',
            'processingTime': '0s',
            'error': 'host unreachable',
        }

    def test_failed_write_removes_partial_download(self, downloads):
        downloads.return_value.iter_content.side_effect = OSError('No space left on device')
        service = ChatbotService('key', 'gemini-test', client=fake_client())

        with patch('chatbot_service.os.remove', wraps=os.remove) as remove:
            result = service.ask('What is recursion?', FILE_URL)

        assert result['modelUsed'] == 'error'
        assert result['error'] == 'No space left on device'
        remove.assert_called_once()
        assert not os.path.exists(remove.call_args.args[0])

    def test_fallback_failure_cleans_up(self, downloads):
        client = fake_client()
        client.files.upload.side_effect = RuntimeError('unsupported file')
        client.models.generate_content_stream.side_effect = RuntimeError('quota exceeded')
        service = ChatbotService('key', 'gemini-test', client=client)

        with patch('chatbot_service.os.remove', wraps=os.remove) as remove:
            result = service.ask('What is recursion?', FILE_URL)

        assert result['modelUsed'] == 'error'
        assert result['error'] == 'quota exceeded'
        remove.assert_called_once()
        assert not os.path.exists(remove.call_args.args[0])

    def test_missing_api_key(self):
        result = ChatbotService('', 'gemini-test').ask('Hi there')
        assert result['modelUsed'] == 'error'
        assert 'CHATBOT_API_KEY' in result['error']


class TestHelpers:
    def test_file_name_from_url(self):
        assert file_name_from_url('https://cdn.example.com/a/b/Lecture%201.pdf?sig=1') == 'Lecture 1.pdf'
        assert file_name_from_url('https://cdn.example.com/') == 'file'

    def test_truncate(self):
        assert truncate('short', 10) == 'short'
        assert truncate('x' * 12, 10) == 'x' * 10 + TRUNCATION_MARKER


class TestChatbotEndpoint:
    def test_ask(self, client, auth_headers, chatbot, test_user):
        response = client.post('/api/chatbot/ask', json={'question': 'What is in chapter 3?', 'fileUrl': FILE_URL},
                               headers=auth_headers)

        assert response.status_code == 200
        assert response.json()['answer'] == 'Chapter 3 covers recursion.'
        assert chatbot.logged == [(str(test_user['_id']), 'What is in chapter 3?', FILE_URL)]

    @pytest.mark.parametrize('body, message', [
        ({'fileUrl': FILE_URL}, 'Question is required'),
        ({'question': 'Anything?'}, 'File URL is required'),
    ])
    def test_missing_fields(self, client, auth_headers, body, message):
        response = client.post('/api/chatbot/ask', json=body, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()['message'] == message

    def test_requires_authentication(self, client):
        response = client.post('/api/chatbot/ask', json={'question': 'q', 'fileUrl': FILE_URL})
        assert response.status_code == 401
