#!/usr/bin/env python
# Software License Agreement (BSD License)
#
# Copyright (c) 2010, Willow Garage, Inc.
# All rights reserved.
#
# Redistribution and use in source and binary forms, with or without
# modification, are permitted provided that the following conditions
# are met:
#
#  * Redistributions of source code must retain the above copyright
#    notice, this list of conditions and the following disclaimer.
#  * Redistributions in binary form must reproduce the above
#    copyright notice, this list of conditions and the following
#    disclaimer in the documentation and/or other materials provided
#    with the distribution.
#  * Neither the name of Willow Garage, Inc. nor the names of its
#    contributors may be used to endorse or promote products derived
#    from this software without specific prior written permission.
#
# THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS
# 'AS IS' AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT
# LIMITED TO, THE IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS
# FOR A PARTICULAR PURPOSE ARE DISCLAIMED. IN NO EVENT SHALL THE
# COPYRIGHT OWNER OR CONTRIBUTORS BE LIABLE FOR ANY DIRECT, INDIRECT,
# INCIDENTAL, SPECIAL, EXEMPLARY, OR CONSEQUENTIAL DAMAGES (INCLUDING,
# BUT NOT LIMITED TO, PROCUREMENT OF SUBSTITUTE GOODS OR SERVICES;
# LOSS OF USE, DATA, OR PROFITS; OR BUSINESS INTERRUPTION) HOWEVER
# CAUSED AND ON ANY THEORY OF LIABILITY, WHETHER IN CONTRACT, STRICT
# LIABILITY, OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE) ARISING IN
# ANY WAY OUT OF THE USE OF THIS SOFTWARE, EVEN IF ADVISED OF THE
# POSSIBILITY OF SUCH DAMAGE.
#

'''
.. module:: bamboo
    :platform: Unix, Windows
    :synopsis: Python API to interact with Bamboo
    :noindex:
'''

import json
import logging
import os

import requests
import requests.exceptions as req_exc
from requests.packages.urllib3.exceptions import InsecureRequestWarning
from urllib.parse import quote, urlencode, urljoin, urlparse, urlunparse

from bamboo import pagination
from bamboo import provenance

# Set default logging handler to avoid "No handler found" warnings.
logging.getLogger(__name__).addHandler(logging.NullHandler())


DEFAULT_URL = 'http://localhost:8085'
DEFAULT_HEADERS = {'Accept': 'application/json'}
ARTIFACT_HEADERS = {'Accept': '*/*'}
# Bamboo rejects state-changing REST calls unless XSRF checking is waived
XSRF_HEADERS = {'X-Atlassian-Token': 'no-check'}
OK_CODES = (200,)
MODIFY_OK_CODES = (200, 204)

SUCCESSFUL = 'Successful'

# REST Endpoints
RESULTS = 'rest/api/latest/result/%(plan_key)s.json'
BUILD_RESULT = 'rest/api/latest/result/%(build_key)s.json'
BUILD_RESULT_EXPAND = 'rest/api/latest/result/%(build_key)s.json?expand=%(expand)s'
ARTIFACT = 'browse/%(build_key)s/artifact/shared/%(artifact_name)s/%(artifact_name)s'
PLANS = 'rest/api/latest/plan.json'
QUEUE_BUILD = 'rest/api/latest/queue/%(build_key)s.json'
ENABLE_PLAN = 'rest/api/latest/plan/%(plan_key)s/enable.json'
CREATE_BRANCH = 'rest/api/latest/plan/%(plan_key)s/branch/%(branch_name)s.json'
SEARCH = 'rest/api/latest/search/%(entity)s.json'


class BambooException(Exception):
    '''General exception type for bamboo-API-related failures.'''
    pass


class UnreachableEndpointException(BambooException):
    '''Raised when the server answers with a status code the call does not accept.'''

    def __init__(self, status_code, msg=None):
        if msg is None:
            msg = 'Unreachable endpoint! Response status code: %s' % status_code
        super(UnreachableEndpointException, self).__init__(msg)
        self.status_code = status_code


class NotFoundException(UnreachableEndpointException):
    '''A special exception to call out the case of receiving a 404.'''
    pass


class EmptyResponseException(BambooException):
    '''A special exception to call out the case receiving an empty response.'''
    pass


class MalformedResponseException(BambooException):
    '''A special exception to call out a body that is not the expected JSON.'''
    pass


class TimeoutException(BambooException):
    '''A special exception to call out in the case of a socket timeout.'''


class NoResultsException(BambooException):
    '''Raised when a plan has no build results at all.'''

    def __init__(self, msg="The plan doesn't contain any result"):
        super(NoResultsException, self).__init__(msg)


class NoSuccessfulBuildException(BambooException):
    '''Raised when every build result of a plan was searched without success.'''

    def __init__(self, msg="The plan doesn't contain any successful build"):
        super(NoSuccessfulBuildException, self).__init__(msg)


class NoPlansException(BambooException):
    '''Raised when the server does not list any plan.'''

    def __init__(self, msg='No plans available'):
        super(NoPlansException, self).__init__(msg)


class WrappedSession(requests.Session):
    """A wrapper for requests.Session to override 'verify' property, ignoring REQUESTS_CA_BUNDLE environment variable.

    This is a workaround for https://github.com/kennethreitz/requests/issues/3829 (will be fixed in requests 3.0.0)
    """

    def merge_environment_settings(self, url, proxies, stream, verify, *args,
                                   **kwargs):
        if self.verify is False:
            verify = False

        return super(WrappedSession, self).merge_environment_settings(url,
                                                                      proxies,
                                                                      stream,
                                                                      verify,
                                                                      *args,
                                                                      **kwargs)


def _embed_credentials(url, username, password):
    '''Fold basic auth credentials into the authority of ``url``.'''
    parts = urlparse(url)
    if not parts.scheme or not parts.netloc:
        return url
    netloc = '%s:%s@%s' % (quote(username, safe=''), quote(password, safe=''),
                           parts.netloc.rpartition('@')[2])
    return urlunparse(parts._replace(netloc=netloc))


class Bamboo(object):

    def __init__(self, url=None, username=None, password=None, timeout=None):
        '''Create handle to Bamboo instance.

        All methods will raise :class:`BambooException` on failure.

        :param url: URL of Bamboo server, ``str``. Defaults to
            ``http://localhost:8085``
        :param username: Server username, ``str``
        :param password: Server password, ``str``
        :param timeout: Server connection timeout in secs (default: not set), ``int``
        '''
        url = url or DEFAULT_URL
        if username and password:
            url = _embed_credentials(url, username, password)

        if url[-1] == '/':
            self.server = url
        else:
            self.server = url + '/'

        self.timeout = timeout
        self._session = WrappedSession()
        self._session.headers.update(DEFAULT_HEADERS)

        extra_headers = os.environ.get("BAMBOO_API_EXTRA_HEADERS", "")
        if extra_headers:
            logging.warning("BAMBOO_API_EXTRA_HEADERS adds these HTTP headers: %s", extra_headers.split("\n"))
        for token in extra_headers.split("\n"):
            if ":" in token:
                header, value = token.split(":", 1)
                self._session.headers[header] = value.strip()

        if os.getenv('PYTHONHTTPSVERIFY', '1') == '0':
            logging.debug('PYTHONHTTPSVERIFY=0 detected so we will '
                          'disable requests library SSL verification to keep '
                          'compatibility with older versions.')
            requests.packages.urllib3.disable_warnings(InsecureRequestWarning)
            self._session.verify = False

    def _get_encoded_params(self, params):
        for k, v in params.items():
            if k in ["plan_key", "build_key", "artifact_name", "branch_name",
                     "entity", "expand"]:
                params[k] = quote(v.encode('utf8'))
        return params

    def _build_url(self, format_spec, variables=None, params=None):

        if variables:
            url_path = format_spec % self._get_encoded_params(variables)
        else:
            url_path = format_spec

        url = str(urljoin(self.server, url_path.lstrip('/')))
        if params:
            url += ('&' if '?' in url else '?') + urlencode(params)
        return url

    def _response_handler(self, response, ok_codes=OK_CODES):
        '''Handle response objects'''

        if response.status_code not in ok_codes:
            if response.status_code == 404:
                raise NotFoundException(response.status_code)
            raise UnreachableEndpointException(response.status_code)

        # Response objects will automatically return unicode encoded
        # when accessing .text property
        return response

    def _request(self, req, stream=False):

        r = self._session.prepare_request(req)
        # requests.Session.send() does not honor env settings by design
        # see https://github.com/requests/requests/issues/2807
        _settings = self._session.merge_environment_settings(
            r.url, {}, stream, self._session.verify, None)
        _settings['timeout'] = self.timeout
        return self._session.send(r, **_settings)

    def bamboo_open(self, req, ok_codes=OK_CODES):
        '''Return the HTTP response body from a ``requests.Request``.

        :returns: ``str``
        '''
        return self.bamboo_request(req, ok_codes).text

    def bamboo_request(self, req, ok_codes=OK_CODES, stream=False):
        '''Utility routine for opening an HTTP request to a Bamboo server.

        :param req: A ``requests.Request`` to submit.
        :param ok_codes: HTTP status codes accepted as success, ``tuple``.
            Anything else raises :class:`UnreachableEndpointException`.
        :param stream: If True, do not download the body up front.
        :returns: A ``requests.Response`` object.
        '''
        try:
            response = self._request(req, stream=stream)
        except req_exc.Timeout as e:
            raise TimeoutException('Error in request: %s' % (e))

        try:
            return self._response_handler(response, ok_codes)
        except BambooException:
            # hand a streamed connection back to the pool
            response.close()
            raise

    def _open_json(self, req, what, ok_codes=OK_CODES, allow_empty=False):
        '''Submit ``req`` and decode its JSON object body.

        :param what: description of the requested item for error messages
        :param allow_empty: If True, an empty body decodes to ``{}``
        '''
        response = self.bamboo_open(req, ok_codes)
        if not response:
            if allow_empty:
                return {}
            raise EmptyResponseException(
                "Error communicating with server: "
                "empty response for %s" % what)
        try:
            body = json.loads(response)
        except ValueError:
            raise MalformedResponseException(
                'Could not parse JSON info for %s' % what)
        if not isinstance(body, dict):
            raise MalformedResponseException(
                'Expected a JSON object for %s' % what)
        return body

    def _get_page(self, body, key, item_key, what):
        '''Return the ``key`` collection page of ``body``, or None if it has
        no ``item_key`` items.
        '''
        page = body.get(key)
        if not page:
            return None
        if not isinstance(page, dict):
            raise MalformedResponseException(
                'Could not parse %s of %s' % (key, what))
        items = page.get(item_key)
        if not items:
            return None
        if not isinstance(items, list) or not all(
                isinstance(item, dict) for item in items):
            raise MalformedResponseException(
                'Could not parse %s of %s' % (key, what))
        return page

    def _iter_result_pages(self, plan_key, params=None):
        '''Yield the ``results`` pages of a plan, newest builds first.'''
        query = dict(params or {})

        def fetch_page(start_index):
            if start_index is not None:
                query[pagination.START_INDEX] = start_index
            what = 'plan[%s]' % plan_key
            body = self._open_json(
                requests.Request('GET', self._build_url(
                    RESULTS, {'plan_key': plan_key}, query)),
                what)
            results = self._get_page(body, 'results', 'result', what)
            if results is None:
                raise NoResultsException()
            return results

        return pagination.iter_pages(fetch_page)

    def _iter_plan_pages(self, params=None):
        '''Yield the ``plans`` pages of the server.'''
        query = dict(params or {})

        def fetch_page(start_index):
            if start_index is not None:
                query[pagination.START_INDEX] = start_index
            body = self._open_json(
                requests.Request('GET', self._build_url(PLANS, params=query)),
                'plan list')
            plans = self._get_page(body, 'plans', 'plan', 'plan list')
            if plans is None:
                raise NoPlansException()
            return plans

        return pagination.iter_pages(fetch_page)

    def get_latest_successful_build_number(self, plan_key, params=None):
        '''Get the number of the most recent successful build of a plan.

        Build results are searched page by page, newest first, and no page
        is requested after the successful build has been found.

        :param plan_key: Bamboo plan key, like ``PROJECT_KEY-PLAN_KEY``, ``str``
        :param params: extra query parameters, like
            ``{'os_authType': 'basic'}``, ``dict``
        :returns: build number, ``str``
        :throws: :class:`NoResultsException` if the plan has no build,
            :class:`NoSuccessfulBuildException` if none of them succeeded
        '''
        try:
            build = pagination.find_first(
                pagination.iter_items(
                    self._iter_result_pages(plan_key, params), 'result'),
                lambda result: result.get('state') == SUCCESSFUL)
        except pagination.PaginationError as e:
            raise BambooException('plan[%s]: %s' % (plan_key, e))
        if build is None:
            raise NoSuccessfulBuildException()
        return build['number']

    def get_latest_build_status(self, plan_key, params=None):
        '''Get state and number of the most recent build of a plan.

        :param plan_key: Bamboo plan key, like ``PROJECT_KEY-PLAN_KEY``, ``str``
        :param params: extra query parameters, ``dict``
        :returns: ``(state, number)``, ``tuple``

        Example::

            >>> state, number = server.get_latest_build_status('PRJ-PLAN')
            >>> print(state, number)
            Failed 23
        '''
        results = next(self._iter_result_pages(plan_key, params))
        latest = results['result'][0]
        return latest.get('state'), latest.get('number')

    def get_build_results(self, plan_key, params=None):
        '''Get every build result of a plan, walking all result pages.

        :param plan_key: Bamboo plan key, like ``PROJECT_KEY-PLAN_KEY``, ``str``
        :param params: extra query parameters, like ``{'max-result': 100}``,
            ``dict``
        :returns: build results in server order, ``[dict]``
        '''
        try:
            return list(pagination.iter_items(
                self._iter_result_pages(plan_key, params), 'result'))
        except pagination.PaginationError as e:
            raise BambooException('plan[%s]: %s' % (plan_key, e))

    def get_build_result(self, build_key, expand=None):
        '''Get build result dictionary.

        :param build_key: plan key and build number, like
            ``PROJECT_KEY-PLAN_KEY/BUILD_NUMBER`` or
            ``PROJECT_KEY-PLAN_KEY-BUILD_NUMBER``, ``str``
        :param expand: comma separated elements to expand, like ``changes``,
            ``str``
        :returns: dictionary of build information, ``dict``
        '''
        if expand:
            url = self._build_url(BUILD_RESULT_EXPAND,
                                  {'build_key': build_key, 'expand': expand})
        else:
            url = self._build_url(BUILD_RESULT, {'build_key': build_key})
        return self._open_json(requests.Request('GET', url),
                               'build[%s]' % build_key)

    def get_build_status(self, build_key):
        '''Get the life cycle state of a build, like ``InProgress``.

        :param build_key: plan key and build number, ``str``
        :returns: life cycle state, ``str``
        '''
        return self.get_build_result(build_key).get('lifeCycleState')

    def get_build_state(self, build_key):
        '''Get the state of a build, like ``Successful`` or ``Failed``.

        :param build_key: plan key and build number, ``str``
        :returns: build state, ``str``
        '''
        return self.get_build_result(build_key).get('state')

    def _walk_build_chain(self, build_key, expand, collection, item, field):
        def fetch_facts(key):
            result = self.get_build_result(key, expand=expand)
            try:
                entries = (result.get(collection) or {}).get(item) or []
                facts = [entry[field] for entry in entries]
            except (AttributeError, KeyError, TypeError):
                raise MalformedResponseException(
                    'Could not parse %s of build[%s]' % (expand, key))
            return facts, result.get('buildReason')

        try:
            return provenance.walk_provenance(build_key, fetch_facts)
        except provenance.ProvenanceError as e:
            raise BambooException('build[%s]: %s' % (build_key, e))

    def get_changes_from_build(self, build_key):
        '''Get the authors of the changes in a build.

        When the build was triggered as the child of another build, the
        authors of that build are included too, recursively.

        :param build_key: plan key and build number, ``str``
        :returns: full names of the authors, without duplicates, ``[str]``
        '''
        return self._walk_build_chain(build_key, 'changes', 'changes',
                                      'change', 'fullName')

    def get_jira_issues_from_build(self, build_key):
        '''Get the JIRA issues linked to a build.

        When the build was triggered as the child of another build, the
        issues of that build are included too, recursively.

        :param build_key: plan key and build number, ``str``
        :returns: issue keys, without duplicates, ``[str]``

        Example::

            >>> print(server.get_jira_issues_from_build('PRJ-PLAN-234'))
            ['AAA', 'BBB', 'CCC']
        '''
        return self._walk_build_chain(build_key, 'jiraIssues', 'jiraIssues',
                                      'issue', 'key')

    def get_artifact_content(self, build_key, artifact_name):
        '''Get the content of a shared artifact of a build.

        :param build_key: plan key and build number, ``str``
        :param artifact_name: Artifact name, ``str``
        :returns: artifact content, ``str``
        '''
        return self.bamboo_open(requests.Request(
            'GET', self._build_url(ARTIFACT, locals()),
            headers=ARTIFACT_HEADERS))

    def get_artifact_content_stream(self, build_key, artifact_name,
                                    chunk_size=8192):
        '''Stream the content of a shared artifact of a build.

        The request is sent immediately, so a missing artifact raises here
        rather than while iterating.

        :param build_key: plan key and build number, ``str``
        :param artifact_name: Artifact name, ``str``
        :param chunk_size: bytes per chunk, ``int``
        :returns: iterator over the artifact content, ``bytes`` chunks
        '''
        response = self.bamboo_request(requests.Request(
            'GET', self._build_url(ARTIFACT, locals()),
            headers=ARTIFACT_HEADERS), stream=True)
        return response.iter_content(chunk_size=chunk_size)

    def get_all_plans(self, params=None):
        '''Get the key and name of every plan, walking all plan pages.

        :param params: extra query parameters, ``dict``
        :returns: list of plans, ``[{'key': str, 'name': str}]``
        :throws: :class:`NoPlansException` if the server lists no plan

        Example::

            >>> print(server.get_all_plans())
            [{'key': 'AA-BB', 'name': 'Full name1'}]
        '''
        try:
            return [{'key': plan.get('key'), 'name': plan.get('name')}
                    for plan in pagination.iter_items(
                        self._iter_plan_pages(params), 'plan')]
        except pagination.PaginationError as e:
            raise BambooException('plan list: %s' % e)

    def build_plan(self, build_key, params=None, build_params=None):
        '''Queue a build of a plan.

        The build is added to the build queue, so it is not guaranteed to
        start immediately.

        :param build_key: plan key, like ``PROJECT_KEY-PLAN_KEY``, ``str``
        :param params: extra query parameters, like
            ``{'os_authType': 'basic'}``, ``dict``
        :param build_params: build options sent as form data, like
            ``{'stage': 'Deploy', 'executeAllStages': 'true',
            'customRevision': 'abc123'}``, ``dict``
        :returns: queued build information, ``dict``; ``{}`` when the
            server accepts the build with an empty response (HTTP 204)
        '''
        return self._open_json(
            requests.Request(
                'POST', self._build_url(QUEUE_BUILD, {'build_key': build_key},
                                        params),
                data=build_params or None, headers=XSRF_HEADERS),
            'queued build of plan[%s]' % build_key, MODIFY_OK_CODES,
            allow_empty=True)

    def enable_plan(self, plan_key, params=None):
        '''Enable a Bamboo plan.

        :param plan_key: plan key, like ``PROJECT_KEY-PLAN_KEY``, ``str``
        :param params: extra query parameters, ``dict``
        :returns: ``True``
        '''
        self.bamboo_open(
            requests.Request(
                'POST', self._build_url(ENABLE_PLAN, {'plan_key': plan_key},
                                        params),
                headers=XSRF_HEADERS),
            MODIFY_OK_CODES)
        return True

    def disable_plan(self, plan_key, params=None):
        '''Disable a Bamboo plan.

        To re-enable, call :meth:`Bamboo.enable_plan`.

        :param plan_key: plan key, like ``PROJECT_KEY-PLAN_KEY``, ``str``
        :param params: extra query parameters, ``dict``
        :returns: ``True``
        '''
        self.bamboo_open(
            requests.Request(
                'DELETE', self._build_url(ENABLE_PLAN, {'plan_key': plan_key},
                                          params),
                headers=XSRF_HEADERS),
            MODIFY_OK_CODES)
        return True

    def create_branch_plan(self, plan_key, branch_name, vcs_branch):
        '''Create a plan branch.

        The plan needs a linked repository for the server to resolve
        ``vcs_branch``.

        :param plan_key: plan key, like ``PROJECT_KEY-PLAN_KEY``, ``str``
        :param branch_name: name of the branch plan shown by Bamboo, ``str``
        :param vcs_branch: branch in the repository, like
            ``refs/heads/BRANCH_NAME`` for git, ``str``
        :returns: key of the branch plan, ``str``
        '''
        url = self._build_url(CREATE_BRANCH, locals(),
                              {'vcsBranch': vcs_branch})
        body = self._open_json(
            requests.Request('PUT', url, headers=XSRF_HEADERS),
            'branch[%s] of plan[%s]' % (branch_name, plan_key),
            MODIFY_OK_CODES)
        return body.get('key')

    def search(self, entity, params=None):
        '''Search Bamboo entities.

        :param entity: entity type, one of ``users``, ``authors``, ``plans``,
            ``branches``, ``projects`` or ``versions``, ``str``
        :param params: search criteria and extra query parameters, like
            ``{'masterPlanKey': 'KEY', 'includeMasterBranch': 'false'}``,
            ``dict``
        :returns: found entities, ``[dict]``
        '''
        body = self._open_json(
            requests.Request('GET', self._build_url(
                SEARCH, {'entity': entity}, params)),
            'search of %s' % entity)
        try:
            return [result.get('searchEntity')
                    for result in body.get('searchResults') or []]
        except (AttributeError, TypeError):
            raise MalformedResponseException(
                'Could not parse searchResults of search of %s' % entity)
