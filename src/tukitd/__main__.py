import sys

from tukitd.main_asyncio import main

sys.exit(main())
