"""Print the OpenAPI schema of the MaturaMate API as JSON."""

import json

from maturamate.main import app

if __name__ == "__main__":
    print(json.dumps(app.openapi()))
