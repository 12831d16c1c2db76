from typing import Any, Dict

import pytest


@pytest.fixture
def overpass_two_way_relation() -> Dict[str, Any]:
    return {
        "elements": [
            {
                "type": "relation",
                "id": 77,
                "tags": {"cable": "telecom", "cable:medium": "Fibre", "name": "Backbone"},
                "members": [
                    {
                        "type": "way",
                        "ref": 1,
                        "role": "",
                        "geometry": [{"lon": 32.0, "lat": 0.1}, {"lon": 32.1, "lat": 0.2}],
                    },
                    {
                        "type": "way",
                        "ref": 2,
                        "role": "",
                        "geometry": [
                            {"lon": 33.0, "lat": 1.0},
                            {"lon": 33.1, "lat": 1.1},
                            {"lon": 33.2, "lat": 1.2},
                        ],
                    },
                ],
            }
        ]
    }
