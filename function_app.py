import azure.functions as func
from dotenv import load_dotenv

# Local .env for dev; local.settings.json is handled by the Functions host.
load_dotenv()

from shared.db import init_db  # noqa: E402

# Creates tables and default page permissions once when the host starts.
init_db()

app = func.FunctionApp()

# Import endpoint modules so their routes register with the shared app.
import health_endpoints  # noqa: E402,F401
import meetings_endpoints  # noqa: E402,F401
import permissions_endpoints  # noqa: E402,F401
import teams_meeting_endpoints  # noqa: E402,F401
