"""Development server for the FloraLens API"""

import os
import sys

if sys.platform == "win32":
    sys.stdout.reconfigure(encoding="utf-8")

from floralens import create_app


def main() -> None:
    app = create_app()

    # Get host/port from environment or use defaults
    host = os.environ.get("FLASK_RUN_HOST", "0.0.0.0")
    port = int(os.environ.get("FLASK_RUN_PORT", 8000))

    print(f"Server starting on http://{host}:{port}")
    print("Press Ctrl+C to stop\n")

    try:
        app.run(host=host, port=port, debug=app.config.get("DEBUG", False), use_reloader=False, threaded=True)
    except KeyboardInterrupt:
        print("\nServer stopped by user")


if __name__ == "__main__":
    main()
