import sys

from etcdjoin.cli import main

sys.exit(main())
