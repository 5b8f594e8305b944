from webgate.cli import main

raise SystemExit(main())
