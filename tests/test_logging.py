import json
import logging

from logging_config import JSONFormatter, get_logger, set_request_id, set_user_id


def make_record(message: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord('homiedo.test', logging.INFO, __file__, 10, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_context():
    set_request_id('req12345')
    set_user_id('user-1')
    try:
        payload = json.loads(JSONFormatter().format(make_record('Created subject', http_status=201)))
    finally:
        set_request_id('')
        set_user_id('')

    assert payload['message'] == 'Created subject'
    assert payload['level'] == 'INFO'
    assert payload['request_id'] == 'req12345'
    assert payload['user_id'] == 'user-1'
    assert payload['http_status'] == 201


def test_json_formatter_without_context():
    payload = json.loads(JSONFormatter().format(make_record('Started')))
    assert 'request_id' not in payload
    assert 'user_id' not in payload


def test_module_loggers_share_the_app_tree():
    assert get_logger('subject_service').name == 'homiedo.subject_service'
    assert get_logger('subject_service').parent.name == 'homiedo'
