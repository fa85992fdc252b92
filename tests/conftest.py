# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
# http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import pathlib

import pytest


UNIT_TESTS = pathlib.Path(__file__).parent / "unit"


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests that touch no sockets")
    config.addinivalue_line(
        "markers", "loopback: tests that open real sockets on 127.0.0.1"
    )


def pytest_collection_modifyitems(items):
    # Anything outside tests/unit talks to a real collector over loopback, so
    # `-m unit` runs without opening a single socket.
    for item in items:
        if UNIT_TESTS in pathlib.Path(item.path).parents:
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.loopback)
