import sys

from thermotray.main import main

sys.exit(main())
