"""python -m clientdesk <command>"""

from clientdesk.cli import main

main()
