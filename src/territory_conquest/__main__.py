from territory_conquest.server import main

main()
