# Paths of the CodeStash notes service; update if the server routes change.

BASE_URL = "http://localhost:8085"

AUTH = {
    "device_code": {
        "method": "POST",
        "path": "/oauth/device/code",
    },
    "token": {
        "method": "POST",
        "path": "/oauth/token",
    },
}

NOTES = {
    "list": {
        "method": "GET",
        "path": "/api/collections/{collection_id}/notes",
    },
    "create": {
        "method": "POST",
        "path": "/api/collections/{collection_id}/notes",
    },
    "update": {
        "method": "PATCH",
        "path": "/api/notes/{note_id}",
    },
}
