from phantomit.cli import main

main()
