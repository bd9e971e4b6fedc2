"""Allow ``python -m payroll_ledger``."""

import sys

from payroll_ledger.cli import main

sys.exit(main())
