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
.. module:: bamboo.pagination
    :platform: Unix, Windows
    :synopsis: Walk collections that the Bamboo REST API returns in pages
'''

import logging

logger = logging.getLogger(__name__)

START_INDEX = 'start-index'
MAX_RESULT = 'max-result'
SIZE = 'size'


class PaginationError(ValueError):
    '''Raised when a page reports counts that can never reach the end.'''
    pass


def next_start_index(page):
    '''Return the offset of the page following ``page``.

    Bamboo describes every collection page with ``size`` (items across all
    pages), ``max-result`` (items in this page) and ``start-index`` (offset
    of this page's first item).

    :param page: collection page, ``dict``
    :returns: offset of the next page, ``int``, or None when ``page`` is the
        last one or carries no pagination metadata
    '''
    try:
        size = int(page[SIZE])
        max_result = int(page[MAX_RESULT])
        start_index = int(page[START_INDEX])
    except (KeyError, TypeError, ValueError):
        return None

    new_index = start_index + max_result
    if new_index >= size:
        return None
    if max_result <= 0:
        raise PaginationError(
            'page at start-index[%d] holds no results but size[%d] reports '
            'more to come' % (start_index, size))
    return new_index


def iter_pages(fetch_page):
    '''Yield collection pages in server order until the last one.

    Pages are requested one at a time; the next request is only issued once
    the previous page has been consumed, so a consumer that stops early
    never triggers further round trips.

    A server that answers a request with a page that does not move past
    the requested offset raises :class:`PaginationError`.

    :param fetch_page: callable taking a start index (None for the first
        page) and returning a page ``dict``
    '''
    start_index = None
    while True:
        logger.debug('Fetching page at start-index[%s]', start_index)
        page = fetch_page(start_index)
        yield page
        next_index = next_start_index(page)
        if next_index is None:
            return
        if start_index is not None and next_index <= start_index:
            raise PaginationError(
                'requested start-index[%d] but the next page would start '
                'at start-index[%d]' % (start_index, next_index))
        start_index = next_index


def iter_items(pages, item_key):
    '''Flatten ``pages`` into their items, preserving order across pages.'''
    for page in pages:
        for item in page.get(item_key) or []:
            yield item


def find_first(items, predicate):
    '''Return the first of ``items`` satisfying ``predicate``, else None.'''
    for item in items:
        if predicate(item):
            return item
    return None
