import sys
import os

from mangum import Mangum

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from finance_ledger.api import app
from finance_ledger.config import settings

app.root_path = settings.API_ROOT_PATH

handler = Mangum(app)
