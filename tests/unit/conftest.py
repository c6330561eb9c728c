from datetime import datetime, timezone

import pytest


@pytest.fixture
def now():
    return datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def upload_date():
    return "2024-06-15T09:00:00Z"


@pytest.fixture
def judgment_row():
    return {
        "Account Number": "100003",
        "ADDRSTRING": "87 OAK BLVD SAN ANTONIO TX",
        "OWNER": "NGUYEN LINH",
        "TOT_PERCAN": 9875.10,
        "LEGALSTATUS": "JUDGMENT",
    }


@pytest.fixture
def existing_property():
    return {
        "id": "X",
        "ADDRSTRING": "101 MAIN ST",
        "owner": "Old Owner",
        "TOT_PERCAN": "1,520.75",
        "LEGALSTATUS": "P",
        "currentStatus": "P",
        "previousStatus": None,
        "statusChangeDate": "2024-05-01T00:00:00+00:00",
        "daysSinceStatusChange": 0,
        "statusHistory": [
            {
                "status": "P",
                "statusDate": "2024-05-01T00:00:00+00:00",
                "previousStatus": None,
                "daysSinceStatusChange": 0,
            }
        ],
    }
