import unittest

import requests

import bamboo
from tests.helper import NullServer


class BambooRequestTimeoutTests(unittest.TestCase):

    def setUp(self):
        super(BambooRequestTimeoutTests, self).setUp()
        self.server = NullServer(("127.0.0.1", 0))

    def tearDown(self):
        self.server.server_close()
        super(BambooRequestTimeoutTests, self).tearDown()

    def test_bamboo_open_timeout(self):
        b = bamboo.Bamboo("http://%s:%s" % self.server.server_address,
                          timeout=0.1)
        request = requests.Request('GET', 'http://%s:%s/rest/api/latest/'
                                   'plan.json' % self.server.server_address)

        # assert our request times out when no response
        with self.assertRaises(bamboo.TimeoutException):
            b.bamboo_open(request)
