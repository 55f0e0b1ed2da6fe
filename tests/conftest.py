import unittest

import pytest
from _pytest.unittest import UnitTestCase
from testscenarios import WithScenarios


# pytest's unittest plugin does not run testscenarios' per-scenario clones,
# so collect one test class per scenario instead, as testscenarios'
# load_tests_apply_scenarios does for the unittest runner.
@pytest.hookimpl(tryfirst=True)
def pytest_pycollect_makeitem(collector, name, obj):
    if not (isinstance(obj, type) and issubclass(obj, unittest.TestCase)
            and issubclass(obj, WithScenarios)):
        return None
    scenarios = getattr(obj, 'scenarios', None)
    if not scenarios:
        return None
    items = []
    for scenario_name, params in scenarios:
        attrs = dict(params)
        attrs['scenarios'] = None
        attrs['__module__'] = obj.__module__
        attrs['__qualname__'] = '{0}[{1}]'.format(obj.__qualname__,
                                                  scenario_name)
        cls = type(attrs['__qualname__'], (obj,), attrs)
        setattr(collector.obj, attrs['__qualname__'], cls)
        items.append(UnitTestCase.from_parent(
            collector, name=attrs['__qualname__'], obj=cls))
    return items
