from bookcatalog.cli import main

main()
