import sys
import random
import logging
import argparse
from collections import namedtuple

#cyclic order, turning right moves forward through it
DIRECTIONS = ("UP","RIGHT","DOWN","LEFT")

DIRECTION_DELTAS = {
    "UP":    (0,-1),
    "RIGHT": (1,0),
    "DOWN":  (0,1),
    "LEFT":  (-1,0),
}

DIRECTION_GLYPHS = {"UP":"^","RIGHT":">","DOWN":"v","LEFT":"<"}

#everything a bot can ask the grid to do in one tick
ACTIONS = ("step","left","right","nop")

DEFAULT_BOT = "loop\nloop\nstep\nendLoop\nleftOrRight\nendLoop\nleft"

#what a renderer sees in one cell, identity is None for walls
Cell_State = namedtuple("Cell_State",["kind","identity"])
WALL = Cell_State("WALL",None)


class Compilation_Error(Exception):
    def __init__(self,reason,line_number=None,line=None):
        self.reason = reason
        self.line_number = line_number
        self.line = line
        if line_number is None:
            message = f"Compilation Error: {reason}"
        else:
            message = f"Compilation Error on line {line_number}: {reason}"
        super().__init__(message)


#struct to hold a single compiled instruction
class Instruction:
    def __init__(self,instr_type,target=None):
        self.instr_type = instr_type
        self.target = target

    def __eq__(self,other):
        if not isinstance(other,Instruction):
            return NotImplemented
        return self.instr_type == other.instr_type and self.target == other.target

    def __repr__(self):
        if self.target is not None:
            return f"{self.instr_type} {self.target}"
        return self.instr_type


class Instruction_Set:
    """A bot program compiled into a flat list of instructions.

    Nested ``loop``/``if`` blocks are lowered into jumps with absolute
    targets, so the bot never walks a tree at run time:

    * ``jmpb N`` jumps to N only when the bot can NOT step forward, and
      falls through otherwise. An ``if`` block therefore runs its body
      while the way ahead is clear and skips it when blocked.
    * ``jmp N`` closes a loop body by jumping back to the loop's ``jmpb``.
    """

    keywords = {
        "step":        "STEP",
        "left":        "TURN_LEFT",
        "right":       "TURN_RIGHT",
        "leftOrRight": "TURN_RANDOM",
        "loop":        "LOOP_START",
        "endLoop":     "LOOP_END",
        "if":          "IF_START",
        "endIf":       "IF_END",
    }

    #straight line tokens and the instruction each one lowers to
    plain_tokens = {
        "STEP":        "step",
        "TURN_LEFT":   "left",
        "TURN_RIGHT":  "right",
        "TURN_RANDOM": "leftOrRight",
    }

    #block terminators and the parser state they are allowed to close
    closers = {
        "LOOP_END": "LOOP",
        "IF_END":   "IF",
    }

    def __init__(self):
        self.raw_code = None
        self.instructions = []

    def __len__(self):
        return len(self.instructions)

    def load(self,file_path):
        with open(file_path,"r") as code_fp:
            code = code_fp.read()
        return self.compile(code)

    def compile(self,code):
        tokens = self.lex(code)
        #parse consumes from the back of the list
        tokens.reverse()
        instr_list,length = self.parse(tokens,0,"ROOT")
        assert length == len(instr_list)

        for offset,instr in enumerate(instr_list):
            logging.debug(f"{offset}: {instr}")

        #only install the program once everything compiled
        self.raw_code = code
        self.instructions = instr_list
        return self

    #one keyword per line, matched exactly, blank lines are skipped
    def lex(self,code):
        tokens = []
        for line_number,line in enumerate(code.splitlines()):
            if line == "":
                continue
            if line not in self.keywords:
                self.fail(f"unknown command '{line}'",line_number,line)
            tokens.append((line_number,line,self.keywords[line]))
        return tokens

    def parse(self,tokens,cursor,state):
        """Compile tokens until the block opened by ``state`` is closed.

        ``cursor`` is the absolute index the first emitted instruction will
        have in the final program. Returns the compiled instructions and
        the cursor just past them, which callers use to compute jump
        targets once a body has been compiled.
        """
        instr_list = []
        while tokens:
            line_number,line,token = tokens.pop()

            if token in self.plain_tokens:
                instr_list.append(Instruction(self.plain_tokens[token]))
                cursor += 1

            elif token == "IF_START":
                #slot at cursor is reserved for the jmpb
                body,body_end = self.parse(tokens,cursor + 1,"IF")
                instr_list.append(Instruction("jmpb",body_end))
                instr_list.extend(body)
                cursor = body_end

            elif token == "LOOP_START":
                head = cursor
                body,body_end = self.parse(tokens,head + 1,"LOOP")
                #exit lands past the jmp that closes the loop
                instr_list.append(Instruction("jmpb",body_end + 1))
                instr_list.extend(body)
                instr_list.append(Instruction("jmp",head))
                cursor = body_end + 1

            elif token in self.closers:
                if self.closers[token] != state:
                    self.fail("loops/ifs mismatched",line_number,line)
                return instr_list,cursor

        if state != "ROOT":
            self.fail("unterminated block")
        return instr_list,cursor

    def fail(self,reason,line_number=None,line=None):
        if line_number is not None:
            logging.error(f"Error on line {line_number}: \"{line}\"")
        logging.error(reason)
        raise Compilation_Error(reason,line_number,line)


def compile_program(code):
    return Instruction_Set().compile(code)


class Bot:
    """Single-step interpreter for a compiled Instruction_Set.

    Every call to execute_one costs exactly one instruction, jumps
    included. Jumps and the restart at the end of the program return
    "nop", so only step/left/right are ever visible to the grid.
    """

    def __init__(self,instruction_set,rng=None):
        self.instruction_set = instruction_set
        self.instruction_list = instruction_set.instructions
        self.instr_ptr = 0
        self.rng = rng if rng is not None else random.Random()

    def execute_one(self,can_advance):
        if self.instr_ptr >= len(self.instruction_list):
            #program finished, start over
            self.instr_ptr = 0
            return "nop"

        instruction = self.instruction_list[self.instr_ptr]
        #jumps overwrite this afterwards
        self.instr_ptr += 1
        f = getattr(self,"f_" + instruction.instr_type)
        return f(instruction,can_advance)

    def f_step(self,instruction=None,can_advance=None):
        return "step"

    def f_left(self,instruction=None,can_advance=None):
        return "left"

    def f_right(self,instruction=None,can_advance=None):
        return "right"

    def f_leftOrRight(self,instruction=None,can_advance=None):
        if self.rng.randrange(2) == 0:
            return "left"
        return "right"

    def f_jmp(self,instruction=None,can_advance=None):
        self.instr_ptr = instruction.target
        return "nop"

    def f_jmpb(self,instruction=None,can_advance=None):
        if not can_advance:
            self.instr_ptr = instruction.target
        return "nop"


class Bot_Wrapper:
    def __init__(self,bot,coords,heading,color):
        assert heading in DIRECTIONS
        self.bot = bot
        self.x,self.y = coords
        self.heading = heading
        self.color = color

        #given by the grid when added
        self.id = None

    @property
    def coords(self):
        return (self.x,self.y)

    def ahead(self):
        dx,dy = DIRECTION_DELTAS[self.heading]
        return (self.x + dx,self.y + dy)

    def move(self,width,height):
        #steps off the edge are dropped, occupancy is not rechecked here
        x,y = self.ahead()
        if 0 <= x < width and 0 <= y < height:
            self.x,self.y = x,y

    def rotate(self,action):
        index = DIRECTIONS.index(self.heading)
        if action == "left":
            index -= 1
        elif action == "right":
            index += 1
        else:
            raise ValueError(f"cannot rotate on action '{action}'")
        self.heading = DIRECTIONS[index % len(DIRECTIONS)]


class Grid:
    def __init__(self,width,height,wall_percent=0,rng=None):
        if width <= 0 or height <= 0:
            raise ValueError(f"grid size must be positive, got {width}x{height}")
        self.width = width
        self.height = height
        self.rng = rng if rng is not None else random.Random()

        #set of (x,y) wall cells
        self.walls = set()

        #bots in insertion order, which is also the order they tick in
        self.bots = []

        self.bot_id_itr = 0
        self.time = 0

        self.add_random_wall(wall_percent)

    def in_bounds(self,x,y):
        return 0 <= x < self.width and 0 <= y < self.height

    def get_bots_count(self):
        return len(self.bots)

    def bot_at(self,x,y):
        for wrapper in self.bots:
            if wrapper.x == x and wrapper.y == y:
                return wrapper
        return None

    def get_cell_state(self,x,y):
        wrapper = self.bot_at(x,y)
        if wrapper is not None:
            return Cell_State("BOT",wrapper.color)
        if (x,y) in self.walls:
            return WALL
        return None

    def can_advance(self,wrapper):
        x,y = wrapper.ahead()
        if not self.in_bounds(x,y):
            return False
        return self.get_cell_state(x,y) is None

    def step(self):
        #each bot sees the moves of the bots ticked before it
        for wrapper in self.bots:
            can_advance = self.can_advance(wrapper)
            action = wrapper.bot.execute_one(can_advance)
            if action == "step":
                wrapper.move(self.width,self.height)
            elif action == "left" or action == "right":
                wrapper.rotate(action)
        self.time += 1

    def run(self,ticks):
        for _ in range(ticks):
            self.print_summary()
            self.step()

    def print_summary(self):
        logging.debug(f"Step {self.time}:")
        logging.debug("Bot Listing")
        for wrapper in self.bots:
            bot = wrapper.bot
            if bot.instr_ptr < len(bot.instruction_list):
                current = bot.instruction_list[bot.instr_ptr]
            else:
                current = "<restart>"
            logging.debug(f"\tid:{wrapper.id} {wrapper.color} coords:{wrapper.coords} heading:{wrapper.heading} ip@{bot.instr_ptr}")
            logging.debug(f"\t\t{current}")

    def add_bot(self,code,coords=None,heading=None):
        #a bad program leaves the grid untouched
        instruction_set = compile_program(code)

        if coords is not None and not self.in_bounds(*coords):
            raise ValueError(f"coords {coords} are outside the {self.width}x{self.height} grid")
        if heading is not None and heading not in DIRECTIONS:
            raise ValueError(f"unknown heading '{heading}'")

        if coords is None:
            coords = self.get_random_empty_cell()
        if heading is None:
            heading = self.rng.choice(DIRECTIONS)

        wrapper = Bot_Wrapper(Bot(instruction_set,rng=self.rng),coords,heading,self.random_color())
        wrapper.id = self.bot_id_itr
        self.bot_id_itr += 1
        self.bots.append(wrapper)
        logging.debug(f"added bot id:{wrapper.id} at {wrapper.coords} facing {wrapper.heading}")
        return wrapper

    def add_random_wall(self,wall_percent):
        if not 0 <= wall_percent <= 100:
            raise ValueError(f"wall percentage must be within 0..100, got {wall_percent}")
        empty = self.empty_cells()
        wall_count = min(self.width * self.height * wall_percent // 100,len(empty))
        self.walls.update(self.rng.sample(empty,wall_count))
        logging.debug(f"scattered {wall_count} walls")

    def toggle_wall(self,x,y):
        if not self.in_bounds(x,y):
            raise ValueError(f"cell {(x,y)} is outside the {self.width}x{self.height} grid")
        if (x,y) in self.walls:
            self.walls.remove((x,y))
        else:
            self.walls.add((x,y))

    def empty_cells(self):
        return [(x,y) for y in range(self.height) for x in range(self.width) if self.get_cell_state(x,y) is None]

    def get_random_empty_cell(self):
        empty = self.empty_cells()
        if not empty:
            raise ValueError("no empty cell left on the grid")
        return self.rng.choice(empty)

    def random_color(self):
        r,g,b = (self.rng.randrange(256) for _ in range(3))
        return f"rgb({r}, {g}, {b})"

    def render(self):
        rows = []
        for y in range(self.height):
            row = ""
            for x in range(self.width):
                wrapper = self.bot_at(x,y)
                if wrapper is not None:
                    row += DIRECTION_GLYPHS[wrapper.heading]
                elif (x,y) in self.walls:
                    row += "#"
                else:
                    row += "."
            rows.append(row)
        return "\n".join(rows)


def main(argv=None):
    parser = argparse.ArgumentParser(prog="grid-bots",description="Run line-programmed bots on a grid.")
    parser.add_argument("bots",nargs="*",help="bot program files, one keyword per line")
    parser.add_argument("--width",type=int,default=10,help="grid width in cells")
    parser.add_argument("--height",type=int,default=10,help="grid height in cells")
    parser.add_argument("--walls",type=int,default=0,help="percentage of cells to fill with walls")
    parser.add_argument("--ticks",type=int,default=20,help="number of ticks to simulate")
    parser.add_argument("--seed",type=int,default=None,help="seed for walls, placement and leftOrRight")
    parser.add_argument("--verbose",action="store_true",help="log every compiled instruction and tick")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,format="%(levelname)s %(message)s")

    try:
        grid = Grid(args.width,args.height,wall_percent=args.walls,rng=random.Random(args.seed))
    except ValueError as e:
        parser.error(str(e))

    sources = []
    for bot_fp in args.bots:
        with open(bot_fp,"r") as code_fp:
            sources.append((bot_fp,code_fp.read()))
    if not sources:
        sources.append(("default bot",DEFAULT_BOT))

    for bot_name,code in sources:
        try:
            logging.debug(f"compiling {bot_name}")
            grid.add_bot(code)
        except (Compilation_Error,ValueError) as e:
            print(f"error while adding {bot_name}: {e}",file=sys.stderr)
            return 1

    print(grid.render())
    for _ in range(args.ticks):
        grid.print_summary()
        grid.step()
        print()
        print(f"tick {grid.time}")
        print(grid.render())
    return 0

if __name__ == "__main__":
    sys.exit(main())
