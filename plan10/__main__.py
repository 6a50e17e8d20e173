from plan10.cli import main

main()
