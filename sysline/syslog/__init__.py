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

import enum


class InvalidSeverityCode(ValueError):
    pass


class InvalidFacility(InvalidSeverityCode):
    pass


class InvalidCode(InvalidSeverityCode):
    pass


@enum.unique
class Facility(enum.Enum):
    kernel = "kernel"
    user = "user"
    mail = "mail"
    daemon = "daemon"
    auth = "auth"
    syslog = "syslog"
    lpr = "lpr"
    news = "news"
    uucp = "uucp"
    cron = "cron"
    authpriv = "authpriv"
    ftp = "ftp"
    local0 = "local0"
    local1 = "local1"
    local2 = "local2"
    local3 = "local3"
    local4 = "local4"
    local5 = "local5"
    local6 = "local6"
    local7 = "local7"


@enum.unique
class Priority(enum.IntEnum):
    debug = 0
    info = 1
    notice = 2
    warning = 3
    error = 4
    critical = 5
    alert = 6
    emergency = 7


# The historical numbering skips 12 through 15, so this has to stay a table.
FACILITY_CODES = {
    Facility.kernel: 0,
    Facility.user: 1,
    Facility.mail: 2,
    Facility.daemon: 3,
    Facility.auth: 4,
    Facility.syslog: 5,
    Facility.lpr: 6,
    Facility.news: 7,
    Facility.uucp: 8,
    Facility.cron: 9,
    Facility.authpriv: 10,
    Facility.ftp: 11,
    Facility.local0: 16,
    Facility.local1: 17,
    Facility.local2: 18,
    Facility.local3: 19,
    Facility.local4: 20,
    Facility.local5: 21,
    Facility.local6: 22,
    Facility.local7: 23,
}

FACILITIES_BY_CODE = {code: facility for facility, code in FACILITY_CODES.items()}

MAX_CODE = (max(FACILITIES_BY_CODE) << 3) | max(Priority)


def encode(facility, priority):
    try:
        facility_code = FACILITY_CODES[facility]
    except KeyError:
        raise InvalidFacility(f"Unknown facility: {facility!r}") from None

    return (facility_code << 3) | Priority(priority)


def decode(code):
    if isinstance(code, bool) or not isinstance(code, int) or not 0 <= code <= MAX_CODE:
        raise InvalidCode(f"Severity code out of range: {code!r}")

    try:
        facility = FACILITIES_BY_CODE[code >> 3]
    except KeyError:
        raise InvalidCode(f"No facility for severity code: {code!r}") from None

    return facility, Priority(code & 0x7)
