from mock import patch

import bamboo
from tests.base import BambooTestBase
from tests.helper import build_response_mock


class BambooArtifactContentTest(BambooTestBase):

    @patch.object(bamboo.Bamboo, 'bamboo_open')
    def test_simple(self, bamboo_mock):
        bamboo_mock.return_value = 'AAA'

        content = self.b.get_artifact_content(u'myPrj-myPlan-234', u'name1')

        self.assertEqual(content, 'AAA')
        request = bamboo_mock.call_args[0][0]
        self.assertEqual(
            request.url,
            self.make_url('browse/myPrj-myPlan-234/artifact/shared/name1/name1'))
        self.assertEqual(request.headers['Accept'], '*/*')
        self._check_requests(bamboo_mock.call_args_list)

    @patch.object(bamboo.Bamboo, 'bamboo_open')
    def test_quoted_name(self, bamboo_mock):
        bamboo_mock.return_value = 'AAA'

        self.b.get_artifact_content(u'myPrj-myPlan-234', u'build log')

        self.assertEqual(
            bamboo_mock.call_args[0][0].url,
            self.make_url('browse/myPrj-myPlan-234/artifact/shared/'
                          'build%20log/build%20log'))

    @patch('bamboo.requests.Session.send')
    def test_missing_artifact(self, session_send_mock):
        session_send_mock.return_value = build_response_mock(
            404, reason="Not Found")

        with self.assertRaises(bamboo.NotFoundException) as context_manager:
            self.b.get_artifact_content(u'myPrj-myPlan-234', u'name1')
        self.assertEqual(
            str(context_manager.exception),
            'Unreachable endpoint! Response status code: 404')


class BambooArtifactContentStreamTest(BambooTestBase):

    @patch('bamboo.requests.Session.send')
    def test_simple(self, session_send_mock):
        session_send_mock.return_value = build_response_mock(
            200, content=b'line1\nline2\n')

        chunks = self.b.get_artifact_content_stream(
            u'myPrj-myPlan-234', u'name1', chunk_size=6)

        self.assertEqual(list(chunks), [b'line1\n', b'line2\n'])
        self.assertEqual(
            session_send_mock.call_args[0][0].url,
            self.make_url('browse/myPrj-myPlan-234/artifact/shared/name1/name1'))
        self.assertTrue(session_send_mock.call_args[1]['stream'])

    @patch('bamboo.requests.Session.send')
    def test_missing_artifact_raises_before_iterating(self, session_send_mock):
        session_send_mock.return_value = build_response_mock(
            404, reason="Not Found")

        with self.assertRaises(bamboo.NotFoundException):
            self.b.get_artifact_content_stream(u'myPrj-myPlan-234', u'name1')

    @patch('bamboo.requests.Session.send')
    def test_rejected_response_is_closed(self, session_send_mock):
        session_send_mock.return_value = build_response_mock(
            403, reason="Forbidden")

        with self.assertRaises(bamboo.UnreachableEndpointException):
            self.b.get_artifact_content_stream(u'myPrj-myPlan-234', u'name1')
        self.assertTrue(session_send_mock.return_value.close.called)
        self.assertTrue(session_send_mock.call_args[1]['stream'])
