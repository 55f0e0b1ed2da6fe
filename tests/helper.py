import json
import socketserver

from mock import Mock
import requests


class NullServer(socketserver.TCPServer):

    request_queue_size = 1

    def __init__(self, server_address, *args, **kwargs):
        # simply init'ing is sufficient to open the port, which
        # with the server not started creates a black hole server
        socketserver.TCPServer.__init__(
            self, server_address, socketserver.BaseRequestHandler,
            *args, **kwargs)


def build_response_mock(status_code, json_body=None, headers=None,
                        add_content_length=True, content=None, **kwargs):
    real_response = requests.Response()
    real_response.status_code = status_code

    text = None
    if json_body is not None:
        text = json.dumps(json_body)
        content = text.encode('utf-8')
        if add_content_length and headers != {}:
            real_response.headers['content-length'] = str(len(content))
    elif content is not None:
        text = content.decode('utf-8')

    real_response._content = content if content is not None else b''
    real_response._content_consumed = True

    if headers is not None:
        for k, v in headers.items():
            real_response.headers[k] = v

    for k, v in kwargs.items():
        setattr(real_response, k, v)

    response = Mock(wraps=real_response, autospec=True)
    response.text = text if text is not None else ''

    # for some reason, wraps cannot handle attributes which are dicts
    # and accessed by key, nor plain values compared by the caller
    response.headers = real_response.headers
    response.content = real_response._content
    response.status_code = real_response.status_code
    response.reason = real_response.reason

    return response
