from fenbank.cli import main

raise SystemExit(main())
