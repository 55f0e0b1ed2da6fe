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
.. module:: bamboo.provenance
    :platform: Unix, Windows
    :synopsis: Follow the chain of builds that triggered a Bamboo build
'''

import logging
import re

logger = logging.getLogger(__name__)

CHILD_OF = 'Child of'
DEFAULT_MAX_DEPTH = 100

# e.g. 'Child of <a href="/browse/PRJ-PLAN-99">PRJ-PLAN-99</a>'
_DEPENDENT_BUILD_RE = re.compile(
    re.escape(CHILD_OF) + r'.*?>\s*([^<>]+?)\s*</a>', re.S)


class ProvenanceError(ValueError):
    '''Raised when a dependent build chain exceeds the allowed depth.'''
    pass


def parse_dependent_build(build_reason):
    '''Extract the key of the build that triggered this one.

    :param build_reason: human readable build reason, ``str`` or None
    :returns: dependent build key, ``str``, or None if the build was not
        triggered as the child of another build
    '''
    if not build_reason or CHILD_OF not in build_reason:
        return None
    match = _DEPENDENT_BUILD_RE.search(build_reason)
    if match is None:
        return None
    return match.group(1)


def walk_provenance(build_key, fetch_facts, max_depth=DEFAULT_MAX_DEPTH):
    '''Union the facts of a build with those of the builds it descends from.

    ``fetch_facts`` is called once per build in the chain, newest first, and
    must return a ``(facts, build_reason)`` tuple. Facts of the requested
    build come first; each dependent build only adds facts not seen yet.

    Any exception raised by ``fetch_facts`` aborts the walk.

    :param build_key: key of the build to start from, ``str``
    :param fetch_facts: callable taking a build key
    :param max_depth: number of dependent builds to follow before giving up,
        ``int``
    :returns: de-duplicated facts, ``list``
    '''
    facts = []
    seen = set()
    visited = set()
    depth = 0
    while build_key is not None:
        if build_key in visited:
            logger.warning('Build chain loops back to %s, stopping', build_key)
            break
        if depth > max_depth:
            raise ProvenanceError(
                'build chain is deeper than %d builds at %s'
                % (max_depth, build_key))
        visited.add(build_key)

        build_facts, build_reason = fetch_facts(build_key)
        for fact in build_facts:
            if fact not in seen:
                seen.add(fact)
                facts.append(fact)

        build_key = parse_dependent_build(build_reason)
        if build_key is not None:
            logger.debug('Following dependent build %s', build_key)
            depth += 1
    return facts
