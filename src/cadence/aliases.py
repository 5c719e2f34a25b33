#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import datetime

PatientId = str
RuleId = str
AppointmentId = str
Instant = datetime.datetime
"""An aware datetime in UTC."""
