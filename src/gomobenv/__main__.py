from gomobenv.cli import main

raise SystemExit(main())
