from shieldgen.cli import main

main()
