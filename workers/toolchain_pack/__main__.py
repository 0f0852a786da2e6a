import sys

from toolchain_pack.runner import main

sys.exit(main())
