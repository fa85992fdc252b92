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

import attr
import attr.validators

from pyparsing import Literal as L, Word
from pyparsing import srange, rest_of_line, printables
from pyparsing import ParseException

from . import Facility, InvalidCode, Priority, decode, encode


class UnparseableSyslogMessage(Exception):
    pass


LANGLE = L("<").suppress()
RANGLE = L(">").suppress()
SEPARATOR = L(": ").suppress()

CODE = LANGLE + Word(srange("[0-9]"), min=1, max=3) + RANGLE  # 191 Max
CODE = CODE.set_results_name("code")
CODE.set_name("Code")
CODE.set_parse_action(lambda s, l, t: int(t[0]))

PROGRAM = Word("".join(set(printables) - {":"}))
PROGRAM = PROGRAM.set_results_name("program")
PROGRAM.set_name("Program")

MESSAGE = rest_of_line.set_results_name("message")
MESSAGE.set_name("Message")

SYSLOG_MESSAGE = CODE + PROGRAM + SEPARATOR + MESSAGE
SYSLOG_MESSAGE.leave_whitespace()


@attr.s(slots=True, frozen=True)
class SyslogMessage:

    facility = attr.ib(
        type=Facility, converter=Facility, validator=attr.validators.in_(Facility)
    )
    priority = attr.ib(
        type=Priority, converter=Priority, validator=attr.validators.in_(Priority)
    )
    program = attr.ib(type=str, validator=attr.validators.instance_of(str))
    message = attr.ib(type=str, validator=attr.validators.instance_of(str))

    @property
    def code(self):
        return encode(self.facility, self.priority)

    def __str__(self):
        return format_message(self.facility, self.priority, self.program, self.message)


def format_message(facility, priority, program, text):
    return f"<{encode(facility, priority)}>{program}: {text}"


def parse(message):
    try:
        parsed = SYSLOG_MESSAGE.parse_string(message, parse_all=True)
    except ParseException as exc:
        raise UnparseableSyslogMessage(str(exc)) from None

    try:
        facility, priority = decode(parsed.code)
    except InvalidCode as exc:
        raise UnparseableSyslogMessage(str(exc)) from None

    return SyslogMessage(
        facility=facility,
        priority=priority,
        program=parsed.program,
        message=parsed.message,
    )
